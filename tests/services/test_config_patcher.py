import json
from datetime import datetime, timezone

from templategen.constants import LOCALDB_CONNECTION_TEMPLATE
from templategen.models import GenerationConfiguration, GenerationContext
from templategen.services.config_patcher import ConfigurationPatcher


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


FIXED_NOW = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)


def build_patcher():
    return ConfigurationPatcher(logger=DummyLogger(), clock=lambda: FIXED_NOW)


def build_context(target_path, connection_string=None, database_name=None):
    configuration = GenerationConfiguration(
        project_name="Widgets",
        target_path=str(target_path),
        template_name="Acme",
        database_name=database_name,
        connection_string=connection_string,
    )
    resolved_database = database_name or "WidgetsDb"
    return GenerationContext(
        configuration=configuration,
        template_path=target_path.parent / "template",
        target_path=target_path,
        old_name="Acme",
        new_name="Widgets",
        database_name=resolved_database,
        connection_string=connection_string
        or LOCALDB_CONNECTION_TEMPLATE.format(database=resolved_database),
        include_folders=configuration.include_folders,
        exclude_directories=configuration.exclude_directories,
        exclude_files=configuration.exclude_files,
    )


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=4), encoding="utf-8")


def test_patch_appsettings_updates_known_fields_only(tmp_path):
    settings = tmp_path / "Backend" / "Widgets.API" / "appsettings.Development.json"
    write_json(
        settings,
        {
            "ConnectionStrings": {
                "DefaultConnection": "Server=(localdb)\\mssqllocaldb;Database=AcmeDb_Dev;Trusted_Connection=true"
            },
            "Jwt": {"Issuer": "Acme.API", "Audience": "Acme.Client", "Key": "Acme-secret"},
            "Logging": {"Source": "Acme"},
        },
    )

    result = build_patcher().patch_appsettings(settings, build_context(tmp_path))

    data = json.loads(settings.read_text(encoding="utf-8"))
    assert result.success
    assert result.replacements == 3
    assert data["ConnectionStrings"]["DefaultConnection"] == (
        "Server=(localdb)\\mssqllocaldb;Database=WidgetsDb_Dev;Trusted_Connection=true"
    )
    assert data["Jwt"] == {"Issuer": "Widgets.API", "Audience": "Widgets.Client", "Key": "Acme-secret"}
    assert data["Logging"] == {"Source": "Acme"}
    assert settings.read_text(encoding="utf-8").startswith('{\n  "ConnectionStrings"')


def test_patch_appsettings_accepts_already_rebranded_values(tmp_path):
    settings = tmp_path / "appsettings.json"
    write_json(settings, {"ConnectionStrings": {"DefaultConnection": "Database=WidgetsDb;"}})

    result = build_patcher().patch_appsettings(settings, build_context(tmp_path, database_name="Inventory"))

    data = json.loads(settings.read_text(encoding="utf-8"))
    assert result.success
    assert data["ConnectionStrings"]["DefaultConnection"] == "Database=Inventory;"


def test_patch_appsettings_uses_explicit_connection_string(tmp_path):
    settings = tmp_path / "appsettings.json"
    write_json(settings, {"ConnectionStrings": {"DefaultConnection": "Database=AcmeDb;"}})

    build_patcher().patch_appsettings(
        settings, build_context(tmp_path, connection_string="Host=db;Database=widgets")
    )

    data = json.loads(settings.read_text(encoding="utf-8"))
    assert data["ConnectionStrings"]["DefaultConnection"] == "Host=db;Database=widgets"


def test_patch_appsettings_does_not_rewrite_unchanged_file(tmp_path):
    settings = tmp_path / "appsettings.json"
    original = '{"Logging": {"LogLevel": {"Default": "Information"}}}'
    settings.write_text(original, encoding="utf-8")

    result = build_patcher().patch_appsettings(settings, build_context(tmp_path))

    assert result.success
    assert result.replacements == 0
    assert settings.read_text(encoding="utf-8") == original


def test_patch_appsettings_reports_invalid_json(tmp_path):
    settings = tmp_path / "appsettings.json"
    settings.write_text("{ not json", encoding="utf-8")

    result = build_patcher().patch_appsettings(settings, build_context(tmp_path))

    assert result.success is False
    assert result.message.startswith("Error:")


def test_patch_package_json_renames_package_and_description(tmp_path):
    package = tmp_path / "package.json"
    write_json(package, {"name": "acme-frontend", "description": "acme-frontend app", "version": "1.0.0"})

    result = build_patcher().patch_package_json(package, build_context(tmp_path))

    data = json.loads(package.read_text(encoding="utf-8"))
    assert result.replacements == 2
    assert data == {"name": "widgets-frontend", "description": "Widgets Frontend Application", "version": "1.0.0"}


def test_patch_readme_adds_header_once(tmp_path):
    readme = tmp_path / "README.md"
    readme.write_text("Some docs\n", encoding="utf-8")
    patcher = build_patcher()

    first = patcher.patch_readme(readme, "Widgets")
    second = patcher.patch_readme(readme, "Widgets")

    assert first.replacements == 1
    assert second.replacements == 0
    assert readme.read_text(encoding="utf-8") == (
        "# Widgets\n\n**Generated:** 2024-05-01 12:30:00 UTC\n\nSome docs\n"
    )


def test_patch_assistant_instructions_replaces_case_insensitively(tmp_path):
    instructions = tmp_path / ".github" / "copilot-instructions.md"
    instructions.parent.mkdir()
    instructions.write_text("Acme uses ACME conventions in acme-frontend.", encoding="utf-8")

    result = build_patcher().patch_assistant_instructions(instructions, "Acme", "Widgets")

    assert result.replacements == 3
    assert instructions.read_text(encoding="utf-8") == "Widgets uses Widgets conventions in Widgets-frontend."


def test_patch_processes_every_known_file(tmp_path):
    write_json(tmp_path / "Backend" / "Widgets.API" / "appsettings.json", {"Jwt": {"Issuer": "Acme"}})
    write_json(tmp_path / "Frontend" / "widgets-frontend" / "package.json", {"name": "acme-frontend"})
    (tmp_path / "Frontend" / "widgets-frontend" / "README.md").write_text("# Already titled\n", encoding="utf-8")
    (tmp_path / ".github").mkdir()
    (tmp_path / ".github" / "copilot-instructions.md").write_text("acme", encoding="utf-8")
    messages = []

    outcome = build_patcher().patch(build_context(tmp_path), progress=messages.append)

    assert outcome.success
    assert [result.kind for result in outcome.file_results] == [
        "appsettings",
        "package.json",
        "markdown",
        "markdown",
    ]
    assert outcome.files_modified == 3
    assert outcome.replacements == 3
    assert "Updating copilot-instructions.md..." in messages


def test_patch_fails_when_any_file_fails(tmp_path):
    (tmp_path / "appsettings.json").write_text("[]", encoding="utf-8")
    write_json(tmp_path / "package.json", {"name": "acme-frontend"})

    outcome = build_patcher().patch(build_context(tmp_path))

    assert outcome.success is False
    assert "1 failures" in outcome.message
    assert json.loads((tmp_path / "package.json").read_text(encoding="utf-8"))["name"] == "widgets-frontend"
