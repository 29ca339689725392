"""Cooperative cancellation for analytics requests."""
from __future__ import annotations

import threading
import time
from typing import Optional

__all__ = ["CancellationToken", "OperationCancelled"]


class OperationCancelled(RuntimeError):
    """Raised when an analytics request is cancelled or outlives its deadline."""


class CancellationToken:
    """Shared flag checked between (and during) ledger queries.

    A token is cancelled either explicitly through :meth:`cancel` or
    implicitly once ``timeout`` seconds have elapsed since construction.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline: Optional[float] = None
        if timeout is not None:
            if timeout <= 0:
                raise ValueError(f"timeout must be positive, got {timeout}")
            self._deadline = time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, operation: str = "analytics request") -> None:
        if self.cancelled:
            raise OperationCancelled(f"{operation} was cancelled")
