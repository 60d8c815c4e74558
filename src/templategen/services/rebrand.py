"""Rebranding service: structural rename followed by content substitution."""

import os
import re
from pathlib import Path
from typing import AnyStr, Callable, List, Optional, Pattern, Tuple

from templategen.cancellation import CancellationToken
from templategen.constants import BINARY_EXTENSIONS
from templategen.errors import GenerationCancelled
from templategen.models import ContentOutcome, RebrandOutcome, RenameOutcome
from templategen.services.filesystem import FileSystemService

BINARY_SNIFF_BYTES = 8192


class RebrandService:
    """Replaces the template token in names and file contents under a root.

    Renames run deepest-first so a directory is only moved after everything
    inside it has been handled; paths collected up front stay valid for the
    whole pass.
    """

    def __init__(self, logger, filesystem_service: FileSystemService, binary_extensions=BINARY_EXTENSIONS):
        self.logger = logger
        self.filesystem = filesystem_service
        self.binary_extensions = frozenset(ext.lower() for ext in binary_extensions)

    def rebrand(
        self,
        target_path: Path,
        old_name: str,
        new_name: str,
        progress: Optional[Callable[[str], None]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> RebrandOutcome:
        self.logger.info("Starting rebranding: %s -> %s in %s", old_name, new_name, target_path)

        try:
            self.logger.info("Phase 1: Renaming files and directories")
            if progress:
                progress("Renaming files and directories...")
            rename = self.rename_structure(target_path, old_name, new_name, cancellation)

            if not rename.success:
                message = f"Rename failed for {len(rename.failed_items)} item(s): " + ", ".join(
                    rename.failed_items[:5]
                )
                self.logger.error(message)
                return RebrandOutcome(
                    success=False,
                    message=message,
                    items_renamed=rename.items_renamed,
                    failures=rename.failed_items,
                )

            self.logger.info("Phase 2: Updating file contents")
            if progress:
                progress("Updating file contents...")
            content = self.update_contents(target_path, old_name, new_name, cancellation)
        except GenerationCancelled:
            raise
        except OSError as exc:
            self.logger.error("Rebranding failed: %s", exc)
            return RebrandOutcome(success=False, message=f"Rebranding failed: {exc}", error=exc)

        if not content.success:
            message = f"Content update failed for {len(content.failed_files)} file(s): " + ", ".join(
                content.failed_files[:5]
            )
            self.logger.error(message)
            return RebrandOutcome(
                success=False,
                message=message,
                items_renamed=rename.items_renamed,
                files_modified=content.files_modified,
                bytes_delta=content.bytes_delta,
                text_files_processed=content.text_files_processed,
                binary_files_skipped=content.binary_files_skipped,
                failures=content.failed_files,
            )

        message = (
            f"Rebranded {rename.items_renamed} items, modified {content.files_modified} files "
            f"({content.bytes_delta:+d} bytes)"
        )
        self.logger.info("Rebranding completed: %s", message)
        return RebrandOutcome(
            success=True,
            message=message,
            items_renamed=rename.items_renamed,
            files_modified=content.files_modified,
            bytes_delta=content.bytes_delta,
            text_files_processed=content.text_files_processed,
            binary_files_skipped=content.binary_files_skipped,
        )

    def collect_items(self, root: Path) -> Tuple[List[Tuple[str, bool, int]], List[str]]:
        """Lists ``(path, is_directory, depth)`` for everything below ``root``.

        Directories that cannot be listed are returned as failures next to
        the items.
        """
        items: List[Tuple[str, bool, int]] = []
        unreadable: List[str] = []

        def walk(directory: str, depth: int):
            try:
                with os.scandir(directory) as iterator:
                    entries = list(iterator)
            except OSError as exc:
                self.logger.warning("Cannot list directory %s: %s", directory, exc)
                unreadable.append(f"{os.path.basename(directory)}/ ({exc})")
                return

            for entry in entries:
                is_directory = entry.is_dir(follow_symlinks=False)
                items.append((entry.path, is_directory, depth + 1))
                if is_directory:
                    walk(entry.path, depth + 1)

        walk(str(root), 0)
        return items, unreadable

    def rename_structure(
        self,
        target_path: Path,
        old_name: str,
        new_name: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> RenameOutcome:
        items, unreadable = self.collect_items(target_path)
        items.sort(key=lambda item: (-item[2], -len(item[0]), item[0]))
        self.logger.debug("Found %s items to potentially rename", len(items))

        renamed = 0
        failed: List[str] = list(unreadable)
        produced = set()

        for item_path, is_directory, _ in items:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            if os.path.normcase(item_path) in produced:
                continue

            parent, item_name = os.path.split(item_path)
            new_item_name, count = replace_token(item_name, old_name, new_name, re.IGNORECASE)
            if not count:
                continue

            new_path = os.path.join(parent, new_item_name)
            kind = "directory" if is_directory else "file"

            if os.path.lexists(new_path) and not _same_entry(item_path, new_path):
                self.logger.warning("Destination %s already exists: %s", kind, new_path)
                failed.append(f"{item_name} (destination exists)")
                continue

            try:
                os.rename(item_path, new_path)
            except OSError as exc:
                self.logger.warning("Failed to rename %s %s: %s", kind, item_path, exc)
                failed.append(f"{item_name} ({exc})")
                continue

            renamed += 1
            produced.add(os.path.normcase(new_path))
            self.logger.debug("Renamed %s: %s -> %s", kind, item_path, new_path)

        self.logger.info("Renamed %s items", renamed)
        return RenameOutcome(success=not failed, items_renamed=renamed, failed_items=tuple(failed))

    def is_binary_path(self, path: Path) -> bool:
        return path.suffix.lower() in self.binary_extensions

    def update_contents(
        self,
        target_path: Path,
        old_name: str,
        new_name: str,
        cancellation: Optional[CancellationToken] = None,
    ) -> ContentOutcome:
        old_bytes = old_name.encode("utf-8")
        new_bytes = new_name.encode("utf-8")

        files_modified = 0
        bytes_delta = 0
        text_files = 0
        binary_files = 0
        items, unreadable = self.collect_items(target_path)
        failed: List[str] = list(unreadable)

        files = sorted(
            Path(item_path)
            for item_path, is_directory, _ in items
            if not is_directory and os.path.isfile(item_path)
        )
        self.logger.debug("Found %s files to process for content updates", len(files))

        for file_path in files:
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            if self.is_binary_path(file_path):
                binary_files += 1
                continue

            try:
                original = self.filesystem.read_bytes(file_path)
            except OSError as exc:
                self.logger.warning("Failed to read file %s: %s", file_path, exc)
                failed.append(f"{file_path.name} ({exc})")
                continue

            if b"\x00" in original[:BINARY_SNIFF_BYTES]:
                self.logger.debug("Skipping file with binary content: %s", file_path)
                binary_files += 1
                continue

            text_files += 1
            if old_bytes not in original:
                continue

            updated, _ = replace_token(original, old_bytes, new_bytes)
            if updated == original:
                continue

            try:
                self.filesystem.write_bytes(file_path, updated)
            except OSError as exc:
                self.logger.warning("Failed to update file content %s: %s", file_path, exc)
                failed.append(f"{file_path.name} ({exc})")
                continue

            delta = len(updated) - len(original)
            files_modified += 1
            bytes_delta += delta
            self.logger.debug("Updated file: %s (%+d bytes)", file_path, delta)

        self.logger.info(
            "Updated %s files, skipped %s binary files, processed %s text files (%+d bytes)",
            files_modified,
            binary_files,
            text_files,
            bytes_delta,
        )
        return ContentOutcome(
            success=not failed,
            files_modified=files_modified,
            bytes_delta=bytes_delta,
            text_files_processed=text_files,
            binary_files_skipped=binary_files,
            failed_files=tuple(failed),
        )


def _same_entry(first: str, second: str) -> bool:
    # Case-only renames on case-insensitive filesystems resolve to the same entry.
    try:
        return os.path.samefile(first, second)
    except OSError:
        return False


def substitution_pattern(old_name: AnyStr, new_name: AnyStr, flags: int = 0) -> Pattern[AnyStr]:
    """Matches ``old_name``, except where it is part of an occurrence of ``new_name``.

    When the new name contains the old one, or equals it, exact-case
    occurrences of the new name are matched first and kept as they are, so
    running the substitution again is a no-op.
    """
    escaped_old = re.escape(old_name)
    escaped_new = re.escape(new_name)
    if re.search(escaped_old, new_name, flags):
        template = b"(?P<keep>(?-i:%s))|%s" if isinstance(old_name, bytes) else "(?P<keep>(?-i:%s))|%s"
        return re.compile(template % (escaped_new, escaped_old), flags)
    return re.compile(escaped_old, flags)


def replace_token(text: AnyStr, old_name: AnyStr, new_name: AnyStr, flags: int = 0) -> Tuple[AnyStr, int]:
    """Returns the substituted text and the number of occurrences replaced."""
    count = 0

    def substitute(match):
        nonlocal count
        if match.lastgroup == "keep":
            return match.group(0)
        count += 1
        return new_name

    return substitution_pattern(old_name, new_name, flags).sub(substitute, text), count
