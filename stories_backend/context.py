"""
Request-scoped cancellation and deadline handling.

Every orchestration call receives an ``OperationContext``. The use cases call
``ctx.check(step)`` before each store, blob or cache round-trip so a request
that was cancelled (or ran out of time) stops issuing new work. Compensating
cleanup ignores the request context and is bounded separately by
``Settings.cleanup_timeout_seconds``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from stories_backend.errors import OperationCancelledError


@dataclass
class OperationContext:
    deadline: Optional[float] = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float | None) -> "OperationContext":
        if seconds is None:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        if self.cancelled:
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self, step: str) -> None:
        if self.expired():
            raise OperationCancelledError(step)
