"""Filter-aware template copy service."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Pattern, Sequence

from templategen.cancellation import CancellationToken
from templategen.errors import GenerationCancelled
from templategen.errors_catalog import actionable_error
from templategen.models import CopyOutcome
from templategen.services.filesystem import FileSystemService, format_bytes


@dataclass
class _CopyTally:
    files: int = 0
    directories: int = 0
    total_bytes: int = 0
    failed: List[str] = field(default_factory=list)


class FileCopier:
    """Copies the include folders of a template into the target tree."""

    def __init__(self, logger, filesystem_service: FileSystemService):
        self.logger = logger
        self.filesystem = filesystem_service

    def copy_template(
        self,
        source_path: Path,
        target_path: Path,
        include_folders: Sequence[str],
        exclude_directories: Iterable[str],
        exclude_files: Iterable[str],
        progress: Optional[Callable[[str], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> CopyOutcome:
        if not source_path.is_dir():
            message = actionable_error("template_not_found", path=str(source_path))
            self.logger.error(message)
            return CopyOutcome(success=False, message=message)

        excluded_dirs = {name.casefold() for name in exclude_directories}
        file_patterns = compile_patterns(exclude_files)

        self.logger.info("Starting template copy from %s to %s", source_path, target_path)
        tally = _CopyTally()

        try:
            target_path.mkdir(parents=True, exist_ok=True)

            for folder in include_folders:
                source_folder = source_path / folder
                if not source_folder.is_dir():
                    self.logger.warning("Included folder not found, skipping: %s", source_folder)
                    continue

                self.logger.info("Copying included folder: %s", folder)
                if progress:
                    progress(f"Copying {folder}...")

                self._copy_directory(
                    source_folder,
                    target_path / folder,
                    excluded_dirs,
                    file_patterns,
                    tally,
                    cancellation,
                )
        except GenerationCancelled:
            raise
        except OSError as exc:
            self.logger.error("Template copy failed: %s", exc)
            return CopyOutcome(
                success=False,
                message=f"Copy operation failed: {exc}",
                files_copied=tally.files,
                directories_created=tally.directories,
                total_bytes=tally.total_bytes,
                failed_files=tuple(tally.failed),
                error=exc,
            )

        if tally.failed:
            message = (
                f"Failed to copy {len(tally.failed)} item(s): " + ", ".join(tally.failed[:5])
            )
            self.logger.error(message)
            return CopyOutcome(
                success=False,
                message=message,
                files_copied=tally.files,
                directories_created=tally.directories,
                total_bytes=tally.total_bytes,
                failed_files=tuple(tally.failed),
            )

        message = (
            f"Copied {tally.files} files in {tally.directories} directories "
            f"({format_bytes(tally.total_bytes)})"
        )
        self.logger.info("Template copy completed: %s", message)
        return CopyOutcome(
            success=True,
            message=message,
            files_copied=tally.files,
            directories_created=tally.directories,
            total_bytes=tally.total_bytes,
        )

    def _copy_directory(
        self,
        source_dir: Path,
        target_dir: Path,
        excluded_dirs: set,
        file_patterns: List[Pattern[str]],
        tally: _CopyTally,
        cancellation: Optional[CancellationToken],
    ):
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with os.scandir(source_dir) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as exc:
            self.logger.error("Failed to copy directory %s: %s", source_dir, exc)
            tally.failed.append(f"{source_dir.name}/ ({exc})")
            return
        tally.directories += 1

        files = [entry for entry in entries if entry.is_file()]
        directories = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                directories.append(entry)
            elif entry.is_symlink() and entry.is_dir():
                self.logger.warning("Skipping symbolic link to directory: %s", entry.path)

        for entry in files:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            if is_excluded_file(entry.name, file_patterns):
                self.logger.debug("Excluding file: %s", entry.path)
                continue

            try:
                copied = self.filesystem.copy_file(
                    Path(entry.path),
                    target_dir / entry.name,
                    cancellation=cancellation,
                )
            except OSError as exc:
                self.logger.error("Failed to copy file %s: %s", entry.path, exc)
                tally.failed.append(f"{entry.name} ({exc})")
                continue

            tally.files += 1
            tally.total_bytes += copied
            self.logger.debug("Copied file: %s (%s bytes)", entry.name, copied)

        for entry in directories:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            if entry.name.casefold() in excluded_dirs:
                self.logger.debug("Excluding directory: %s", entry.path)
                continue

            self._copy_directory(
                Path(entry.path),
                target_dir / entry.name,
                excluded_dirs,
                file_patterns,
                tally,
                cancellation,
            )


def compile_patterns(patterns: Iterable[str]) -> List[Pattern[str]]:
    """Compiles ``*``/``?`` wildcards into case-insensitive full-name matchers."""
    compiled = []
    for pattern in patterns:
        expression = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
        compiled.append(re.compile(f"^{expression}$", re.IGNORECASE | re.DOTALL))
    return compiled


def is_excluded_file(name: str, patterns: List[Pattern[str]]) -> bool:
    return any(pattern.match(name) for pattern in patterns)
