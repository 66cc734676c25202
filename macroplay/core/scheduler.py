"""Cancellable delayed callbacks.

The engine never sleeps; every timed transition goes through a
:class:`Scheduler`. The Qt shell supplies one backed by ``QTimer``; tests and
headless playback use :class:`ManualScheduler`, which only moves when told to.
"""

from __future__ import annotations

import heapq
import itertools
from typing import Callable, List, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class ManualTimer:
    def __init__(self, deadline: int, callback: Callable[[], None]) -> None:
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock: callbacks run only from :meth:`advance`."""

    def __init__(self) -> None:
        self._now = 0
        self._seq = itertools.count()
        self._queue: List[Tuple[int, int, ManualTimer]] = []

    @property
    def now(self) -> int:
        """Elapsed virtual milliseconds."""
        return self._now

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0, int(delay_ms)), callback)
        heapq.heappush(self._queue, (timer.deadline, next(self._seq), timer))
        return timer

    def pending(self) -> int:
        """Number of timers that have neither fired nor been cancelled."""
        return sum(1 for _, _, t in self._queue if not t.cancelled and not t.fired)

    def advance(self, ms: int) -> None:
        """Move the clock forward, firing due callbacks in deadline order."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._queue)
            self._now = deadline
            if timer.cancelled:
                continue
            timer.fired = True
            timer.callback()
        self._now = target

    def run_until_idle(self, limit_ms: int = 600_000) -> None:
        """Fire everything pending, up to *limit_ms* of virtual time."""
        end = self._now + limit_ms
        while self.pending() and self._now < end:
            next_deadline = min(d for d, _, t in self._queue if not t.cancelled and not t.fired)
            self.advance(max(0, next_deadline - self._now))
