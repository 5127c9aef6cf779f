"""Cancellation and deadline handling shared by every phase."""
import threading
import time
from typing import Optional

from kubeprovision.errors import PhaseTimeout, ProvisionCancelled


class RunContext:
    """Cancellation token plus an optional deadline.

    A context is created once per invocation and handed down to phases. Phases
    get a child context carrying their own timeout; children share the parent's
    cancellation event, so cancelling the root wakes every waiter.
    """

    def __init__(self, deadline: Optional[float] = None, cancel_event: Optional[threading.Event] = None):
        self._deadline = deadline
        self._cancel_event = cancel_event or threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "RunContext":
        return cls(deadline=time.monotonic() + seconds)

    def child(self, timeout: Optional[float] = None) -> "RunContext":
        """Derive a context with the tighter of the parent's and the given deadline."""
        deadline = self._deadline
        if timeout is not None:
            own = time.monotonic() + timeout
            deadline = own if deadline is None else min(deadline, own)
        return RunContext(deadline=deadline, cancel_event=self._cancel_event)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise if the context was cancelled or its deadline passed."""
        if self.cancelled:
            raise ProvisionCancelled()
        if self.expired():
            raise PhaseTimeout("deadline exceeded")

    def sleep(self, seconds: float) -> None:
        """Sleep up to `seconds`, never past the deadline.

        Raises ProvisionCancelled as soon as the context is cancelled; reaching
        the deadline just returns, leaving the caller to report what it waited on.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if self._cancel_event.wait(seconds):
            raise ProvisionCancelled()
