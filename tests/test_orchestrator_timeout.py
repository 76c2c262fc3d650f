"""Round timeout and auto-advance across reconfiguration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ear_trainer.events import EventName, RoundState, SessionState
from ear_trainer.music import NoteDuration, NoteFilter
from ear_trainer.orchestrator import GameOrchestrator


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _configure(orch: GameOrchestrator, mode: str = "sandbox") -> None:
    orch.apply_settings(mode, None, NoteFilter(), NoteDuration.HALF, 3.0, 1500)


def test_timeout_reveals_answer_once_then_auto_advances() -> None:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=21)
    seen: list[tuple[EventName, Any]] = []
    for name in EventName:
        orch.on(name, lambda payload, name=name: seen.append((name, payload)))

    # Reconfigured twice before the session starts.
    _configure(orch)
    _configure(orch)
    orch.start()
    first = orch.begin_new_round()
    assert first is not None

    clock.advance(2.5)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT

    clock.advance(0.5)
    orch.update()
    intermissions = [
        p for n, p in seen if n is EventName.STATE_CHANGE and p.round_state is RoundState.TIMEOUT_INTERMISSION
    ]
    assert len(intermissions) == 1
    assert intermissions[0].revealed == first.stimulus

    timeout_results = [p for n, p in seen if n is EventName.GUESS_RESULT]
    assert len(timeout_results) == 1
    assert timeout_results[0].guess is None and not timeout_results[0].is_correct
    assert timeout_results[0].feedback.startswith(f"Time's up! The correct answer was {first.stimulus.note}")

    # The round is over; a late guess changes nothing.
    mode = orch.mode_state
    assert mode is not None and mode.total_attempts == 1
    assert orch.submit_guess(first.stimulus) is None
    assert mode.total_attempts == 1 and mode.correct_attempts == 0

    clock.advance(1.0)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION

    clock.advance(0.5)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT
    second = orch.context
    assert second is not None and second is not first
    assert second.round_index == 1
    round_starts = [p for n, p in seen if n is EventName.ROUND_START]
    assert [r.context for r in round_starts] == [first, second]

    waiting_after_timeout = [
        p.round_state for n, p in seen if n is EventName.STATE_CHANGE
    ][-2:]
    assert waiting_after_timeout == [RoundState.TIMEOUT_INTERMISSION, RoundState.WAITING_INPUT]

    orch.stop()
    count = len(seen)
    clock.advance(30.0)
    assert orch.update() == 0
    assert len(seen) == count
    assert orch.session_state is SessionState.IDLE


def test_reconfiguring_during_the_intermission_still_advances() -> None:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=4)
    _configure(orch)
    orch.start()
    orch.begin_new_round()

    clock.advance(3.0)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION

    clock.advance(1.0)
    orch.update()
    _configure(orch, "survival")

    # The intermission restarts from the reconfiguration.
    clock.advance(1.0)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION
    clock.advance(0.5)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT
    assert orch.mode_state is not None and orch.mode_state.mode == "survival"


def test_clock_jump_replays_timeouts_in_order() -> None:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=8)
    _configure(orch)
    starts = []
    orch.on(EventName.ROUND_START, starts.append)
    orch.start()
    orch.begin_new_round()

    # Each round: 3 s response window plus 1.5 s intermission.
    clock.advance(10.0)
    orch.update()

    assert [s.context.started_at_s for s in starts] == [0.0, 4.5, 9.0]
    assert orch.round_state is RoundState.WAITING_INPUT
    assert orch.mode_state is not None and orch.mode_state.total_attempts == 2


def test_unlimited_response_time_never_times_out() -> None:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=2)
    orch.apply_settings("sandbox", {"session_duration": 5}, NoteFilter(), "2n", None, 1500)
    orch.start()
    orch.begin_new_round()
    clock.advance(120.0)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT
