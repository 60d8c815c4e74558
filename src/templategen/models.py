"""Shared domain models for TemplateGen."""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from templategen.constants import (
    DEFAULT_EXCLUDE_DIRECTORIES,
    DEFAULT_EXCLUDE_FILES,
    DEFAULT_INCLUDE_FOLDERS,
    DEFAULT_TEMPLATE_NAME,
)
from templategen.errors_catalog import actionable_error

PROJECT_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Scratch keys a step may leave for a later one.
SCRATCH_COPY_OUTCOME = "copy_outcome"
SCRATCH_SOLUTION_PATH = "solution_path"
SCRATCH_REBRAND_OUTCOME = "rebrand_outcome"
SCRATCH_PATCH_OUTCOME = "patch_outcome"
SCRATCH_REPOSITORY_OUTCOME = "repository_outcome"


@dataclass(frozen=True)
class GenerationConfiguration:
    """User intent for one generation run."""

    project_name: str
    target_path: str
    template_path: Optional[str] = None
    template_name: str = DEFAULT_TEMPLATE_NAME
    database_name: Optional[str] = None
    connection_string: Optional[str] = None
    include_folders: Tuple[str, ...] = DEFAULT_INCLUDE_FOLDERS
    exclude_directories: Tuple[str, ...] = DEFAULT_EXCLUDE_DIRECTORIES
    exclude_files: Tuple[str, ...] = DEFAULT_EXCLUDE_FILES
    initialize_repository: bool = True
    create_initial_commit: bool = True
    run_output_validation: bool = True

    def validate(self) -> List[str]:
        errors = []

        if not self.project_name or not self.project_name.strip():
            errors.append("Project name is required")
        elif not PROJECT_NAME_PATTERN.match(self.project_name):
            errors.append(actionable_error("invalid_project_name", name=self.project_name))

        if not self.target_path or not self.target_path.strip():
            errors.append("Target path is required")

        if not self.template_name or not self.template_name.strip():
            errors.append("Template name is required")

        if self.database_name is not None and not self.database_name.strip():
            errors.append("Database name must not be blank when provided")

        return errors


@dataclass(frozen=True)
class GenerationContext:
    """Facts derived once per run and shared by every step.

    ``scratch`` is the only mutable part. Keys in use are the ``SCRATCH_*``
    constants of this module.
    """

    configuration: GenerationConfiguration
    template_path: Path
    target_path: Path
    old_name: str
    new_name: str
    database_name: str
    connection_string: str
    include_folders: Tuple[str, ...]
    exclude_directories: Tuple[str, ...]
    exclude_files: Tuple[str, ...]
    scratch: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepResult:
    success: bool
    message: str
    error: Optional[BaseException] = None
    step_name: str = ""
    order: int = 0


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    message: str
    generated_path: Optional[Path] = None
    step_results: Tuple[StepResult, ...] = ()
    duration_seconds: float = 0.0
    error: Optional[BaseException] = None
    cancelled: bool = False


@dataclass(frozen=True)
class CopyOutcome:
    success: bool
    message: str
    files_copied: int = 0
    directories_created: int = 0
    total_bytes: int = 0
    failed_files: Tuple[str, ...] = ()
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class RenameOutcome:
    success: bool
    items_renamed: int = 0
    failed_items: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContentOutcome:
    success: bool
    files_modified: int = 0
    bytes_delta: int = 0
    text_files_processed: int = 0
    binary_files_skipped: int = 0
    failed_files: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RebrandOutcome:
    success: bool
    message: str
    items_renamed: int = 0
    files_modified: int = 0
    bytes_delta: int = 0
    text_files_processed: int = 0
    binary_files_skipped: int = 0
    failures: Tuple[str, ...] = ()
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class FilePatchResult:
    path: Path
    kind: str
    success: bool
    message: str
    replacements: int = 0
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ConfigPatchOutcome:
    success: bool
    message: str
    file_results: Tuple[FilePatchResult, ...] = ()
    files_modified: int = 0
    replacements: int = 0
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class CommandResult:
    args: Tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    started: bool = True
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.started and not self.timed_out and self.returncode == 0


@dataclass(frozen=True)
class RepositoryOutcome:
    success: bool
    message: str
    repository_created: bool = False
    commit_created: bool = False
    error: Optional[BaseException] = None
