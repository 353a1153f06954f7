"""
Deferred, cancellable calls on a single-threaded scheduler.

Scheduler is implemented by gui.scheduler.QtScheduler on top of QTimer, and by
ManualScheduler here, a virtual clock that only advances when told to (tests
and headless runs).
"""

from typing import Callable


class ScheduledCall:
    """Handle of one deferred call."""

    def __init__(self, due_ms: float, seq: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.done = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.done)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    def call_later(self, delay_ms: float, callback: Callable[[], None]):
        """Run callback once after delay_ms; returns a handle with cancel()."""
        raise NotImplementedError


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Nothing runs until advance() moves the clock. Calls scheduled from inside
    a callback run in the same advance() if they fall due before its target.
    """

    def __init__(self):
        self.now_ms = 0.0
        self._pending: list[ScheduledCall] = []
        self._seq = 0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCall:
        self._seq += 1
        call = ScheduledCall(self.now_ms + max(0.0, delay_ms), self._seq, callback)
        self._pending.append(call)
        return call

    def advance(self, ms: float = 0.0) -> None:
        target = self.now_ms + ms
        while True:
            due = [c for c in self._pending if c.active and c.due_ms <= target]
            if not due:
                break
            call = min(due, key=lambda c: (c.due_ms, c.seq))
            self._pending.remove(call)
            self.now_ms = call.due_ms
            call.done = True
            call.callback()
        self._pending = [c for c in self._pending if c.active]
        self.now_ms = target

    def run_all(self) -> None:
        """Advance until no call is pending."""
        while self.pending_count:
            next_due = min(c.due_ms for c in self._pending if c.active)
            self.advance(max(0.0, next_due - self.now_ms))

    @property
    def pending_count(self) -> int:
        return sum(1 for c in self._pending if c.active)
