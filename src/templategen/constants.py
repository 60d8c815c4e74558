"""Defaults shared by the generation services."""

DEFAULT_TEMPLATE_NAME = "WebTemplate"

DEFAULT_INCLUDE_FOLDERS = ("Backend", "Frontend")

DEFAULT_EXCLUDE_DIRECTORIES = (
    ".git",
    ".vs",
    "bin",
    "obj",
    "node_modules",
    "build",
    "dist",
    ".vscode",
    "TestResults",
)

DEFAULT_EXCLUDE_FILES = ("*.user", "*.suo", "*.log", "package-lock.json")

# Relative to the template root; "{name}" is the template token.
REQUIRED_TEMPLATE_PATHS = (
    "Backend",
    "Backend/{name}.API",
    "Backend/{name}.Core",
    "Backend/{name}.Data",
    "Frontend",
)

# Relative to the target root; "{name}" is the new project name.
EXPECTED_OUTPUT_PATHS = (
    ("Backend API project", "Backend/{name}.API"),
    ("Frontend project", "Frontend/{name}-frontend"),
)

BINARY_EXTENSIONS = frozenset(
    {
        ".dll", ".exe", ".obj", ".o",
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".ico", ".svg", ".webp",
        ".mp3", ".mp4", ".wav", ".avi", ".mkv", ".mov", ".flv",
        ".pdf", ".zip", ".rar", ".7z", ".tar", ".gz", ".iso",
        ".bin", ".hex", ".dat", ".db", ".sqlite", ".mdb",
        ".class", ".jar", ".pyc", ".so",
    }
)

LOCALDB_CONNECTION_TEMPLATE = (
    "Server=(localdb)\\mssqllocaldb;Database={database};"
    "Trusted_Connection=true;MultipleActiveResultSets=true;TrustServerCertificate=true"
)

COPY_RETRY_DELAY_SECONDS = 0.1
MINIMUM_GIT_VERSION = "2.0"
GIT_COMMAND_TIMEOUT_SECONDS = 300.0
