"""Cooperative cancellation for long-running generation work."""

import threading
from typing import Optional

from templategen.errors import GenerationCancelled


class CancellationToken:
    """Thread-safe flag checked between discrete units of work."""

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled by user."):
        self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise GenerationCancelled(self._reason or "Operation cancelled by user.")

    def wait(self, timeout: float) -> bool:
        """Sleeps up to ``timeout`` seconds, returning early when cancelled."""
        return self._event.wait(timeout)


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return token if token is not None else CancellationToken()
