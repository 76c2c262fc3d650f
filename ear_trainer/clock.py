from __future__ import annotations

import heapq
import itertools
import logging
import time
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    """Monotonic clock abstraction.

    Core logic depends on this interface rather than calling real time directly.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle:
    __slots__ = ("due_s", "seq", "name", "_callback", "cancelled", "fired")

    def __init__(self, due_s: float, seq: int, name: str, callback: Callable[[], None]) -> None:
        self.due_s = due_s
        self.seq = seq
        self.name = name
        self._callback: Callable[[], None] | None = callback
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True
        self._callback = None

    def __lt__(self, other: TimerHandle) -> bool:
        return (self.due_s, self.seq) < (other.due_s, other.seq)

    def __repr__(self) -> str:
        state = "pending" if self.pending else "cancelled" if self.cancelled else "fired"
        return f"TimerHandle({self.name!r}, due={self.due_s:.3f}, {state})"


class Scheduler:
    """Single-threaded timer queue pumped by the host loop.

    ``run_due()`` fires every entry whose due time has passed, ordered by due
    time then scheduling order. While a callback runs, ``now()`` reports that
    entry's due time, so a large clock jump replays timers exactly as if the
    host had pumped continuously.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._queue: list[TimerHandle] = []
        self._seq = itertools.count()
        self._virtual_now: float | None = None

    def now(self) -> float:
        if self._virtual_now is not None:
            return self._virtual_now
        return self._clock.now()

    def call_later(self, delay_s: float, callback: Callable[[], None], *, name: str = "") -> TimerHandle:
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        handle = TimerHandle(self.now() + float(delay_s), next(self._seq), name, callback)
        heapq.heappush(self._queue, handle)
        logger.debug(f"Scheduled timer {name!r} in {delay_s:.3f}s")
        return handle

    def pending_count(self) -> int:
        return sum(1 for h in self._queue if h.pending)

    def run_due(self) -> int:
        """Fire due timers; returns how many callbacks ran."""

        horizon = self._clock.now()
        fired = 0
        while self._queue and self._queue[0].due_s <= horizon:
            handle = heapq.heappop(self._queue)
            callback = handle._callback
            if handle.cancelled or callback is None:
                continue
            handle.fired = True
            handle._callback = None
            self._virtual_now = handle.due_s
            try:
                callback()
            finally:
                self._virtual_now = None
            fired += 1
        return fired
