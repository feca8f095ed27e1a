"""Cooperative cancellation for long-running provers."""

from __future__ import annotations

import threading
import time

from quorumbridge.core.errors import ProvingTimeout


class Deadline:
    """Wall-clock budget plus an optional cancel event, checked between prover stages."""

    def __init__(self, timeout: float | None = None, cancel: threading.Event | None = None) -> None:
        self.timeout = timeout
        self.cancel = cancel
        self._expires = time.monotonic() + timeout if timeout is not None else None

    @property
    def expired(self) -> bool:
        if self.cancel is not None and self.cancel.is_set():
            return True
        return self._expires is not None and time.monotonic() >= self._expires

    @property
    def remaining(self) -> float | None:
        if self._expires is None:
            return None
        return max(0.0, self._expires - time.monotonic())

    def check(self, stage: str) -> None:
        if self.expired:
            reason = "cancelled" if self.cancel is not None and self.cancel.is_set() else "timed out"
            raise ProvingTimeout(f"proving {reason} during {stage}")


NO_DEADLINE = Deadline()
