"""
Cooperative cancellation for long-running computations.
"""

import threading
import time
from typing import Optional


class CancellationToken:
    """
    Cancellation flag with an optional deadline.

    Workers poll ``cancelled`` between units of work (scenarios, iterations)
    and stop early; nothing is interrupted mid-computation.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self):
        self._event.set()

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.timed_out

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, remaining={self.remaining()})"
