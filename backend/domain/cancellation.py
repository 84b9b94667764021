"""CancelToken — cooperative cancellation and deadlines for long backend calls."""

import threading
import time
from typing import Optional

from domain.errors import JobCancelledError, TransientBackendError


class CancelToken:
    """A cancellation flag with an optional monotonic deadline.

    Children share the parent's flag (cancelling the parent cancels them)
    but can carry a tighter deadline of their own.
    """

    def __init__(self, deadline: Optional[float] = None, _event: Optional[threading.Event] = None):
        self._event = _event or threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds if seconds else None)

    def child(self, timeout: Optional[float] = None) -> "CancelToken":
        deadline = self._deadline
        if timeout:
            own = time.monotonic() + timeout
            deadline = own if deadline is None else min(deadline, own)
        return CancelToken(deadline=deadline, _event=self._event)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_stopped(self) -> None:
        """Raise if cancelled or past the deadline. Adapters call this between units of work."""
        if self.cancelled:
            raise JobCancelledError("Job was cancelled")
        if self.expired:
            raise TransientBackendError("Backend call exceeded its time limit")

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``. Returns True if woken by cancellation."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        return self._event.wait(max(0.0, seconds))
