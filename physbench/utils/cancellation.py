"""
Cooperative cancellation for long-running generation and benchmark calls.

Workers poll the token between units of work (batches, statements); nothing is
interrupted mid-statement.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from physbench.errors import Cancelled


class CancellationToken:
    """
    Thread-safe cancellation flag with an optional deadline.
    """

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(self.reason or "cancelled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


__all__ = ["CancellationToken"]
