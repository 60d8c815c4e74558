"""Git repository initialization for generated projects."""

import re
from pathlib import Path
from typing import Callable, Optional

from packaging import version

from templategen.cancellation import CancellationToken
from templategen.constants import GIT_COMMAND_TIMEOUT_SECONDS, MINIMUM_GIT_VERSION
from templategen.errors_catalog import actionable_error
from templategen.models import CommandResult, RepositoryOutcome
from templategen.services.command_runner import CommandRunner

_GIT_VERSION_PATTERN = re.compile(r"git version (\d+(?:\.\d+){0,2})")


class RepositoryService:
    """Wraps the git executable: availability check, init, first commit."""

    def __init__(
        self,
        logger,
        command_runner: CommandRunner,
        git_executable: str = "git",
        minimum_version: str = MINIMUM_GIT_VERSION,
        timeout: float = GIT_COMMAND_TIMEOUT_SECONDS,
    ):
        self.logger = logger
        self.command_runner = command_runner
        self.git_executable = git_executable
        self.minimum_version = version.parse(minimum_version)
        self.timeout = timeout

    def parse_git_version(self, output: str) -> Optional[version.Version]:
        match = _GIT_VERSION_PATTERN.search(output or "")
        if not match:
            return None
        return version.parse(match.group(1))

    def check_available(self, cancellation: Optional[CancellationToken] = None) -> Optional[str]:
        """Returns an error message when git cannot be used, otherwise ``None``."""
        result = self._git(["--version"], cwd=None, cancellation=cancellation)
        if not result.success:
            self.logger.warning("Git is not available or not in PATH: %s", result.stderr.strip())
            return actionable_error("git_not_available")

        detected = self.parse_git_version(result.stdout)
        if detected is None:
            self.logger.warning("Could not parse git version from: %s", result.stdout.strip())
            return None

        if detected < self.minimum_version:
            return actionable_error(
                "git_too_old", version=str(detected), minimum=str(self.minimum_version)
            )

        self.logger.debug("Detected git %s", detected)
        return None

    def initialize(
        self,
        target_path: Path,
        project_name: str,
        create_initial_commit: bool,
        progress: Optional[Callable[[str], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> RepositoryOutcome:
        self.logger.info("Initializing git repository in %s", target_path)

        unavailable = self.check_available(cancellation)
        if unavailable:
            return RepositoryOutcome(success=False, message=unavailable)

        if progress:
            progress("Initializing git repository...")

        init = self._git(["init"], cwd=target_path, cancellation=cancellation)
        if not init.success:
            detail = self._describe(init)
            self.logger.error("Git init failed: %s", detail)
            return RepositoryOutcome(success=False, message=f"Git init failed: {detail}")

        self.logger.info("Git repository initialized successfully")

        if not create_initial_commit:
            return RepositoryOutcome(
                success=True,
                message="Git repository initialized successfully",
                repository_created=True,
            )

        if progress:
            progress("Creating initial commit...")

        add = self._git(["add", "."], cwd=target_path, cancellation=cancellation)
        if not add.success:
            self.logger.warning("Git add failed, continuing without commit: %s", self._describe(add))
            return RepositoryOutcome(
                success=True,
                message="Repository initialized, but staging files failed",
                repository_created=True,
            )

        commit = self._git(
            ["commit", "-m", f"Initial commit for {project_name}"],
            cwd=target_path,
            cancellation=cancellation,
        )
        if not commit.success:
            self.logger.warning("Git commit failed: %s", self._describe(commit))
            return RepositoryOutcome(
                success=True,
                message="Repository initialized, but initial commit failed",
                repository_created=True,
            )

        self.logger.info("Initial commit created successfully")
        return RepositoryOutcome(
            success=True,
            message="Git repository initialized with initial commit",
            repository_created=True,
            commit_created=True,
        )

    def _git(
        self,
        arguments,
        cwd: Optional[Path],
        cancellation: Optional[CancellationToken],
    ) -> CommandResult:
        return self.command_runner.run(
            [self.git_executable, *arguments],
            cwd=str(cwd) if cwd is not None else None,
            timeout=self.timeout,
            cancellation=cancellation,
        )

    @staticmethod
    def _describe(result: CommandResult) -> str:
        if result.timed_out:
            return "timed out"
        detail = (result.stderr or result.stdout or "").strip()
        return f"exit code {result.returncode}: {detail}" if detail else f"exit code {result.returncode}"
