"""Filesystem helpers for TemplateGen."""

import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from templategen.cancellation import CancellationToken
from templategen.constants import COPY_RETRY_DELAY_SECONDS


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, retry_delay_seconds: float = COPY_RETRY_DELAY_SECONDS):
        self.logger = logger
        self.retry_delay_seconds = retry_delay_seconds

    def copy_file(
        self,
        source: Path,
        destination: Path,
        cancellation: Optional[CancellationToken] = None,
    ) -> int:
        """Copies one file, overwriting, retrying once after a short pause.

        Returns the number of bytes copied. The second ``OSError`` propagates.
        """
        try:
            shutil.copy2(source, destination)
        except OSError as exc:
            self.logger.warning("Failed to copy file, retrying: %s (%s)", source, exc)
            if cancellation is not None:
                cancellation.wait(self.retry_delay_seconds)
                cancellation.raise_if_cancelled()
            else:
                time.sleep(self.retry_delay_seconds)
            shutil.copy2(source, destination)

        return destination.stat().st_size

    def read_bytes(self, path: Path) -> bytes:
        with open(path, "rb") as file_obj:
            return file_obj.read()

    def write_bytes(self, path: Path, data: bytes):
        with open(path, "wb") as file_obj:
            file_obj.write(data)


def format_bytes(size: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        order += 1
        value /= 1024
    return f"{value:.2f} {units[order]}"
