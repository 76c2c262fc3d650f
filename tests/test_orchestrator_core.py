from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import pytest

from ear_trainer.errors import InvalidSettingsError, InvalidStateError, ModeNotFoundError
from ear_trainer.events import EventName, GuessResult, RoundState, SessionState, StateChange
from ear_trainer.music import NOTE_NAMES, KeyType, NoteDuration, NoteFilter, NoteWithOctave
from ear_trainer.orchestrator import GameOrchestrator
from ear_trainer.rush import RushMode
from ear_trainer.settings import RushSettings, SurvivalSettings
from ear_trainer.survival import SurvivalMode


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _build(
    mode: str = "sandbox",
    bag: Any = None,
    *,
    timeout: float | None = 3.0,
    advance_ms: float = 1500,
    seed: int = 5,
) -> tuple[FakeClock, GameOrchestrator]:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=seed)
    orch.apply_settings(mode, bag, NoteFilter(), NoteDuration.HALF, timeout, advance_ms)
    return clock, orch


def _record(orch: GameOrchestrator) -> list[tuple[EventName, Any]]:
    seen: list[tuple[EventName, Any]] = []
    for name in EventName:
        orch.on(name, lambda payload, name=name: seen.append((name, payload)))
    return seen


def _wrong(note: NoteWithOctave) -> NoteWithOctave:
    return NoteWithOctave(NOTE_NAMES[(NOTE_NAMES.index(note.note) + 1) % 12], note.octave)


def _round_states(seen: list[tuple[EventName, Any]]) -> list[RoundState | None]:
    return [p.round_state for n, p in seen if n is EventName.STATE_CHANGE]


def test_round_operations_require_a_playing_session() -> None:
    _, orch = _build()
    with pytest.raises(InvalidStateError):
        orch.begin_new_round()
    with pytest.raises(InvalidStateError):
        orch.submit_guess("C4")
    with pytest.raises(InvalidStateError):
        orch.pause()
    with pytest.raises(InvalidStateError):
        orch.resume()

    orch.start()
    with pytest.raises(InvalidStateError):
        orch.start()


def test_begin_new_round_needs_a_mode_and_filter() -> None:
    orch = GameOrchestrator(clock=FakeClock(), seed=1)
    orch.start()
    with pytest.raises(InvalidStateError):
        orch.begin_new_round()

    orch.set_game_mode(RushMode(RushSettings()))
    orch.set_note_filter(NoteFilter(key_type=KeyType.WHITE))
    ctx = orch.begin_new_round()
    assert ctx is not None and not ctx.stimulus.is_black_key


def test_round_start_follows_the_waiting_input_transition() -> None:
    _, orch = _build()
    seen = _record(orch)
    states_in_handler: list[RoundState | None] = []
    orch.on(EventName.ROUND_START, lambda _e: states_in_handler.append(orch.round_state))

    orch.start()
    ctx = orch.begin_new_round()

    assert [n for n, _ in seen] == [
        EventName.STATE_CHANGE,
        EventName.SESSION_START,
        EventName.STATE_CHANGE,
        EventName.ROUND_START,
    ]
    assert states_in_handler == [RoundState.WAITING_INPUT]
    round_start = seen[-1][1]
    assert round_start.context is ctx
    assert round_start.note_duration is NoteDuration.HALF
    assert seen[1][1].mode == "sandbox"


def test_incorrect_guess_stays_on_round_and_correct_guess_advances() -> None:
    _, orch = _build(timeout=None)
    seen = _record(orch)
    orch.start()
    first = orch.begin_new_round()
    assert first is not None

    miss = orch.submit_guess(_wrong(first.stimulus))
    assert miss is not None and not miss.should_advance
    assert orch.round_state is RoundState.WAITING_INPUT
    assert orch.context is not None
    assert orch.context.stimulus == first.stimulus
    assert orch.context.attempts == 1

    hit = orch.submit_guess(str(first.stimulus))
    assert hit is not None and hit.should_advance
    assert orch.context is not None and orch.context.round_index == 1

    results = [p for n, p in seen if n is EventName.GUESS_RESULT]
    assert [r.is_correct for r in results] == [False, True]
    assert _round_states(seen)[-4:] == [
        RoundState.INCORRECT_FEEDBACK,
        RoundState.WAITING_INPUT,
        RoundState.CORRECT_FEEDBACK,
        RoundState.WAITING_INPUT,
    ]


def test_incorrect_guess_keeps_the_remaining_response_window() -> None:
    clock, orch = _build(timeout=5.0)
    orch.start()
    ctx = orch.begin_new_round()
    assert ctx is not None

    clock.advance(2.0)
    orch.update()
    orch.submit_guess(_wrong(ctx.stimulus))

    clock.advance(2.9)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT

    clock.advance(0.1)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION


def test_pause_freezes_the_round_timeout() -> None:
    clock, orch = _build(timeout=3.0)
    orch.start()
    orch.begin_new_round()

    clock.advance(1.0)
    orch.update()
    orch.pause()
    assert orch.session_state is SessionState.PAUSED
    with pytest.raises(InvalidStateError):
        orch.submit_guess("C4")

    clock.advance(10.0)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT

    orch.resume()
    clock.advance(1.5)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT
    clock.advance(0.5)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION
    assert orch.session_elapsed_s() == pytest.approx(3.0)


def test_reconfiguring_mid_round_restarts_the_response_window() -> None:
    clock, orch = _build(timeout=3.0)
    orch.start()
    orch.begin_new_round()
    old_mode = orch.mode_state

    clock.advance(2.0)
    orch.update()
    orch.apply_settings("sandbox", None, NoteFilter(), "2n", 3.0, 1500)
    assert orch.mode_state is not old_mode
    assert orch.mode_state is not None and orch.mode_state.started

    clock.advance(1.0)
    orch.update()
    assert orch.round_state is RoundState.WAITING_INPUT
    clock.advance(2.0)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION


def test_failed_apply_settings_leaves_the_previous_configuration_active() -> None:
    clock, orch = _build(timeout=3.0)
    orch.start()
    orch.begin_new_round()
    mode, timing, epoch = orch.mode_state, orch.timing, orch.epoch

    clock.advance(1.0)
    with pytest.raises(ModeNotFoundError):
        orch.apply_settings("marathon", None, NoteFilter(), "2n", 3.0, 1500)
    with pytest.raises(InvalidSettingsError):
        orch.apply_settings("rush", {"target_notes": "ten"}, NoteFilter(), "2n", 3.0, 1500)
    with pytest.raises(InvalidSettingsError):
        orch.apply_settings(
            "rush", None, NoteFilter(key_type=KeyType.BLACK, allowed_notes=("C",)), "2n", 3.0, 1500
        )
    with pytest.raises(InvalidSettingsError):
        orch.apply_settings("rush", None, NoteFilter(), "3n", 3.0, 1500)
    with pytest.raises(InvalidSettingsError):
        orch.apply_settings("rush", None, NoteFilter(), "2n", -1.0, 1500)

    assert orch.mode_state is mode
    assert orch.timing == timing
    assert orch.epoch == epoch

    clock.advance(2.0)
    orch.update()
    assert orch.round_state is RoundState.TIMEOUT_INTERMISSION


def test_stop_is_idempotent_and_blocks_round_operations() -> None:
    clock, orch = _build()
    seen = _record(orch)
    orch.start()
    orch.begin_new_round()

    orch.stop()
    orch.stop()
    assert orch.session_state is SessionState.IDLE
    assert orch.context is None
    assert orch.scheduler.pending_count() == 0
    with pytest.raises(InvalidStateError):
        orch.begin_new_round()
    with pytest.raises(InvalidStateError):
        orch.submit_guess("C4")
    with pytest.raises(InvalidStateError):
        orch.apply_settings("rush", None, NoteFilter(), "2n", 3.0, 1500)
    with pytest.raises(InvalidStateError):
        orch.set_note_filter(NoteFilter())
    with pytest.raises(InvalidStateError):
        orch.resume()

    count = len(seen)
    clock.advance(60.0)
    assert orch.update() == 0
    assert len(seen) == count

    orch.start()
    ctx = orch.begin_new_round()
    assert ctx is not None and ctx.round_index == 0
    assert seen[-1][0] is EventName.ROUND_START


def test_restart_after_completion_rebuilds_the_mode() -> None:
    _, orch = _build("rush", {"target_notes": 1}, timeout=None)
    completes = []
    orch.on(EventName.SESSION_COMPLETE, completes.append)
    orch.start()
    ctx = orch.begin_new_round()
    assert ctx is not None
    first_mode = orch.mode_state

    outcome = orch.submit_guess(ctx.stimulus)
    assert outcome is not None and outcome.game_completed
    assert orch.session_state is SessionState.COMPLETED
    assert len(completes) == 1
    assert orch.last_report is not None and orch.last_report.stats.correct_attempts == 1
    with pytest.raises(InvalidStateError):
        orch.start()

    orch.stop()
    orch.start()
    assert orch.mode_state is not first_mode
    assert orch.mode_state is not None and orch.mode_state.correct_attempts == 0
    assert orch.last_report is None


def test_restart_after_a_mid_session_stop_starts_from_zero() -> None:
    _, orch = _build("rush", {"target_notes": 3}, timeout=None)
    orch.start()
    for _ in range(2):
        ctx = orch.context or orch.begin_new_round()
        assert ctx is not None
        orch.submit_guess(ctx.stimulus)
    assert orch.mode_state is not None and orch.mode_state.correct_attempts == 2

    orch.stop()
    orch.start()
    mode = orch.mode_state
    assert isinstance(mode, RushMode)
    assert mode.correct_attempts == 0 and mode.longest_streak == 0

    ctx = orch.begin_new_round()
    assert ctx is not None and ctx.round_index == 0
    outcome = orch.submit_guess(ctx.stimulus)
    assert outcome is not None and not outcome.game_completed
    assert orch.session_state is SessionState.PLAYING


def test_restart_resets_a_mode_installed_with_set_game_mode() -> None:
    orch = GameOrchestrator(clock=FakeClock(), seed=2)
    mode = SurvivalMode(SurvivalSettings())
    orch.set_game_mode(mode)
    orch.set_note_filter(NoteFilter())
    orch.start()
    ctx = orch.begin_new_round()
    assert ctx is not None
    orch.submit_guess(_wrong(ctx.stimulus))
    assert mode.health == 75.0 and mode.total_attempts == 1

    orch.stop()
    orch.start()
    assert orch.mode_state is mode
    assert mode.health == 100.0
    assert mode.total_attempts == 0 and not mode.started


def test_timer_fault_is_logged_and_the_next_round_begins(caplog: pytest.LogCaptureFixture) -> None:
    clock, orch = _build(timeout=1.0)

    def explode(result: GuessResult) -> None:
        if result.guess is None:
            raise RuntimeError("listener blew up")

    orch.on(EventName.GUESS_RESULT, explode)
    orch.start()
    orch.begin_new_round()

    clock.advance(1.0)
    with caplog.at_level(logging.ERROR, logger="ear_trainer.orchestrator"):
        orch.update()

    assert "abandoning the round" in caplog.text
    assert orch.round_state is RoundState.WAITING_INPUT
    assert orch.context is not None and orch.context.round_index == 1


def test_tick_callbacks_report_round_and_session_time() -> None:
    clock = FakeClock()
    orch = GameOrchestrator(clock=clock, seed=3)
    round_updates: list[float] = []
    session_updates: list[tuple[float, float | None]] = []
    orch.apply_settings(
        "sandbox",
        {"session_duration": 0.5},
        NoteFilter(),
        "2n",
        None,
        1500,
        on_timer_update=round_updates.append,
        on_session_timer_update=lambda elapsed, remaining: session_updates.append((elapsed, remaining)),
    )
    ticks = []
    orch.on(EventName.TIMER_TICK, ticks.append)
    orch.start()
    orch.begin_new_round()

    clock.advance(1.0)
    orch.update()

    assert round_updates == [1.0]
    assert session_updates == [(1.0, 29.0)]
    assert ticks[0].session_remaining_s == 29.0


def test_configuration_setters_validate_their_input() -> None:
    orch = GameOrchestrator(clock=FakeClock())
    with pytest.raises(InvalidSettingsError):
        orch.set_game_mode("rush")  # type: ignore[arg-type]
    with pytest.raises(InvalidSettingsError):
        orch.set_note_filter(NoteFilter(key_type=KeyType.BLACK, allowed_notes=("E",)))
    assert orch.note_filter is None


def test_state_change_reaches_listeners_registered_before_reconfiguration() -> None:
    _, orch = _build()
    changes: list[StateChange] = []
    orch.on(EventName.STATE_CHANGE, changes.append)
    orch.apply_settings("rush", None, NoteFilter(), "4n", 3.0, 1500)
    orch.apply_settings("survival", None, NoteFilter(), "4n", 3.0, 1500)

    orch.start()
    orch.begin_new_round()

    assert [c.round_state for c in changes] == [None, RoundState.WAITING_INPUT]
