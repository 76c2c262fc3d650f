"""Round and session timers on top of the shared scheduler.

Every callback is wrapped with the epoch it was armed in. Bumping the epoch
(on stop or reconfiguration) turns any handle that escaped cancellation into
a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from .clock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class Epoch:
    def __init__(self) -> None:
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def bump(self) -> int:
        self._value += 1
        return self._value

    def guard(self, callback: Callable[[], None], *, name: str = "") -> Callable[[], None]:
        armed_in = self._value

        def _guarded() -> None:
            if armed_in != self._value:
                logger.debug(f"Dropped stale timer {name!r} (epoch {armed_in} != {self._value})")
                return
            callback()

        return _guarded


class RoundTimerKind(StrEnum):
    TIMEOUT = "round-timeout"
    AUTO_ADVANCE = "auto-advance"


class RoundTimer:
    """At most one pending round timer: the timeout or the auto-advance."""

    def __init__(self, scheduler: Scheduler, epoch: Epoch) -> None:
        self._scheduler = scheduler
        self._epoch = epoch
        self._handle: TimerHandle | None = None
        self._kind: RoundTimerKind | None = None

    @property
    def kind(self) -> RoundTimerKind | None:
        if self._handle is None or not self._handle.pending:
            return None
        return self._kind

    def arm(self, kind: RoundTimerKind, delay_s: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def _fire() -> None:
            self._handle = None
            self._kind = None
            callback()

        self._kind = kind
        self._handle = self._scheduler.call_later(
            max(0.0, float(delay_s)), self._epoch.guard(_fire, name=kind), name=kind
        )

    def remaining_s(self) -> float | None:
        if self.kind is None:
            return None
        assert self._handle is not None
        return max(0.0, self._handle.due_s - self._scheduler.now())

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._kind = None


class SessionTimer:
    """Periodic ticker reporting session elapsed time; paused time is excluded."""

    def __init__(self, scheduler: Scheduler, epoch: Epoch, *, interval_s: float = 1.0) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._scheduler = scheduler
        self._epoch = epoch
        self._interval_s = float(interval_s)
        self._handle: TimerHandle | None = None
        self._on_tick: Callable[[float, float], None] | None = None
        self._started_at_s: float | None = None
        self._paused_at_s: float | None = None
        self._paused_total_s = 0.0
        self._last_elapsed_s = 0.0
        self._next_tick_in_s = self._interval_s

    @property
    def running(self) -> bool:
        return self._started_at_s is not None and self._paused_at_s is None

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def start(self, on_tick: Callable[[float, float], None]) -> None:
        """(Re)start from zero; ``on_tick(elapsed_s, delta_s)`` fires every interval."""

        self.stop()
        self._on_tick = on_tick
        self._started_at_s = self._scheduler.now()
        self._paused_at_s = None
        self._paused_total_s = 0.0
        self._last_elapsed_s = 0.0
        self._arm(self._interval_s)

    def elapsed_s(self) -> float:
        if self._started_at_s is None:
            return 0.0
        now = self._paused_at_s if self._paused_at_s is not None else self._scheduler.now()
        return max(0.0, now - self._started_at_s - self._paused_total_s)

    def pause(self) -> None:
        if not self.running:
            return
        assert self._handle is not None
        self._next_tick_in_s = max(0.0, self._handle.due_s - self._scheduler.now())
        self._handle.cancel()
        self._handle = None
        self._paused_at_s = self._scheduler.now()

    def resume(self) -> None:
        if self._started_at_s is None or self._paused_at_s is None:
            return
        self._paused_total_s += self._scheduler.now() - self._paused_at_s
        self._paused_at_s = None
        self._arm(self._next_tick_in_s)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._started_at_s = None
        self._paused_at_s = None

    def _arm(self, delay_s: float) -> None:
        self._handle = self._scheduler.call_later(
            delay_s, self._epoch.guard(self._tick, name="session-tick"), name="session-tick"
        )

    def _tick(self) -> None:
        elapsed = self.elapsed_s()
        delta = elapsed - self._last_elapsed_s
        self._last_elapsed_s = elapsed
        # Re-arm first so on_tick may stop the timer.
        self._arm(self._interval_s)
        if self._on_tick is not None:
            self._on_tick(elapsed, delta)
