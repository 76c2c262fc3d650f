"""Session/round orchestration.

The orchestrator owns the active mode strategy, the current round, both timer
subsystems and the state machine, and broadcasts every transition on its
event channel. All time comes from the injected clock; the host pumps
``update()`` to fire due timers.

Reconfiguration (``apply_settings``) and ``stop`` bump the timer epoch, so a
timer armed for a previous configuration can never act on the new one, and
re-create the forwarding subscription from the same ``_forward_transition``
method, so broadcasting cannot be lost across reconfiguration.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from .clock import Clock, Scheduler
from .errors import InvalidSettingsError, InvalidStateError
from .events import (
    EventChannel,
    EventName,
    GuessResult,
    RoundStart,
    RoundState,
    SessionComplete,
    SessionStart,
    SessionState,
    StateChange,
    TimerTick,
    Unsubscribe,
)
from .machine import SessionMachine
from .mode_core import GuessOutcome, ModeId, ModeState, RoundContext, SeededRng
from .music import NoteDuration, NoteFilter, NoteWithOctave, parse_note
from .registry import ModeRegistry, default_registry
from .results import SessionReport, session_report_from_mode
from .settings import TimingSettings
from .timers import Epoch, RoundTimer, RoundTimerKind, SessionTimer

logger = logging.getLogger(__name__)

TimerUpdate = Callable[[float], None]
SessionTimerUpdate = Callable[[float, float | None], None]


class GameOrchestrator:
    def __init__(
        self,
        *,
        clock: Clock,
        registry: ModeRegistry | None = None,
        seed: int | None = None,
        timing: TimingSettings | None = None,
        session_tick_s: float = 1.0,
    ) -> None:
        self._scheduler = Scheduler(clock)
        self._registry = registry if registry is not None else default_registry()
        self._rng = SeededRng(seed)
        self._channel = EventChannel()
        self._machine = SessionMachine()

        self._epoch = Epoch()
        self._round_timer = RoundTimer(self._scheduler, self._epoch)
        self._session_timer = SessionTimer(self._scheduler, self._epoch, interval_s=session_tick_s)
        self._forwarding: Unsubscribe | None = None

        self._mode: ModeState | None = None
        self._rebuild_mode: Callable[[], ModeState] | None = None
        self._note_filter: NoteFilter | None = None
        self._timing = timing or TimingSettings()
        self._on_timer_update: TimerUpdate | None = None
        self._on_session_timer_update: SessionTimerUpdate | None = None

        self._context: RoundContext | None = None
        self._rounds_played = 0
        self._timeouts = 0
        # Round timer kind and remaining delay captured by pause().
        self._paused_round: tuple[RoundTimerKind, float] | None = None
        self._last_report: SessionReport | None = None
        # Set by stop(); only start() clears it.
        self._stopped = False

        self._attach_forwarding()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def session_state(self) -> SessionState:
        return self._machine.session_state

    @property
    def round_state(self) -> RoundState | None:
        return self._machine.round_state

    @property
    def context(self) -> RoundContext | None:
        return self._context

    @property
    def mode_state(self) -> ModeState | None:
        return self._mode

    @property
    def note_filter(self) -> NoteFilter | None:
        return self._note_filter

    @property
    def timing(self) -> TimingSettings:
        return self._timing

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def last_report(self) -> SessionReport | None:
        return self._last_report

    @property
    def epoch(self) -> int:
        return self._epoch.current

    def is_awaiting_guess(self) -> bool:
        return self.session_state is SessionState.PLAYING and self.round_state is RoundState.WAITING_INPUT

    def session_elapsed_s(self) -> float:
        return self._session_timer.elapsed_s()

    def on(self, event: EventName | str, handler: Callable[[Any], None]) -> Unsubscribe:
        return self._channel.on(event, handler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.session_state is not SessionState.IDLE:
            raise InvalidStateError(f"start() requires {SessionState.IDLE}, session is {self.session_state}")
        mode = self._mode
        if mode is not None and mode.has_progress:
            # A session never inherits progress from an earlier one.
            if self._rebuild_mode is not None:
                self._mode = self._rebuild_mode()
            else:
                mode.reset()
        self._context = None
        self._rounds_played = 0
        self._timeouts = 0
        self._paused_round = None
        self._stopped = False
        self._last_report = None
        if self._forwarding is None:
            self._attach_forwarding()

        self._machine.transition_session(SessionState.PLAYING)
        self._session_timer.start(self._on_session_tick)
        mode_id = None if self._mode is None else self._mode.mode
        logger.info(f"Session started (mode={mode_id})")
        self._channel.emit(EventName.SESSION_START, SessionStart(mode=mode_id))

    def stop(self) -> None:
        self._epoch.bump()
        self._stopped = True
        self._cancel_timers()
        self._detach_forwarding()
        self._paused_round = None
        if self.session_state is not SessionState.IDLE:
            self._machine.transition_session(SessionState.IDLE)
            logger.info("Session stopped")
        self._context = None

    def pause(self) -> None:
        self._require(SessionState.PLAYING, "pause")
        kind = self._round_timer.kind
        remaining = self._round_timer.remaining_s()
        self._paused_round = None if kind is None or remaining is None else (kind, remaining)
        self._round_timer.cancel()
        self._session_timer.pause()
        self._machine.transition_session(SessionState.PAUSED)

    def resume(self) -> None:
        self._require(SessionState.PAUSED, "resume")
        self._machine.transition_session(SessionState.PLAYING)
        self._session_timer.resume()
        paused, self._paused_round = self._paused_round, None
        if paused is None:
            return
        kind, remaining = paused
        if kind is RoundTimerKind.TIMEOUT:
            self._arm_round_timeout(remaining)
        else:
            self._arm_auto_advance(remaining)

    def update(self) -> int:
        """Fire due timers; call once per host frame."""

        return self._scheduler.run_due()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_game_mode(self, mode_state: ModeState) -> None:
        self._require_not_stopped("set_game_mode")
        if not isinstance(mode_state, ModeState):
            raise InvalidSettingsError(f"expected a ModeState, got {type(mode_state).__name__}")
        self._mode = mode_state
        self._rebuild_mode = None
        if self._context is not None and self.session_state in (SessionState.PLAYING, SessionState.PAUSED):
            mode_state.on_start_new_round(self._context)

    def set_note_filter(self, note_filter: NoteFilter) -> None:
        self._require_not_stopped("set_note_filter")
        self._note_filter = self._validated_filter(note_filter)

    def apply_settings(
        self,
        mode_id: ModeId | str,
        mode_settings_bag: Any,
        note_filter: NoteFilter,
        note_duration: NoteDuration | str,
        timeout_seconds: float | None,
        auto_advance_ms: float,
        on_timer_update: TimerUpdate | None = None,
        on_session_timer_update: SessionTimerUpdate | None = None,
    ) -> None:
        """Reconfigure in place.

        Everything is validated before anything changes: an unknown mode,
        malformed settings or bad timing leaves the previous configuration
        fully active.
        """

        self._require_not_stopped("apply_settings")
        descriptor = self._registry.get(mode_id)
        settings = descriptor.parse_settings(mode_settings_bag)
        new_mode = descriptor.create(settings, rng=self._rng)
        checked_filter = self._validated_filter(note_filter)
        timing = TimingSettings(
            response_time_limit_s=timeout_seconds,
            auto_advance_ms=auto_advance_ms,
            note_duration=note_duration,
        )

        self._epoch.bump()
        self._cancel_timers()
        self._detach_forwarding()
        self._attach_forwarding()

        self._mode = new_mode
        self._rebuild_mode = lambda: descriptor.create(settings, rng=self._rng)
        self._note_filter = checked_filter
        self._timing = timing
        self._on_timer_update = on_timer_update
        self._on_session_timer_update = on_session_timer_update
        logger.info(
            f"Applied settings: mode={descriptor.id} timeout={timeout_seconds} "
            f"auto_advance_ms={auto_advance_ms} epoch={self._epoch.current}"
        )
        self._rearm_after_reconfigure()

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def begin_new_round(self) -> RoundContext | None:
        """Start a round; returns None if the mode turned out to be complete."""

        self._require(SessionState.PLAYING, "begin_new_round")
        mode = self._mode
        if mode is None or self._note_filter is None:
            raise InvalidStateError("begin_new_round() needs a game mode and a note filter")
        if mode.is_game_complete(self._context):
            self._complete_session()
            return None

        self._round_timer.cancel()
        stimulus = mode.generate_note(self._note_filter)
        context = RoundContext(
            stimulus=stimulus,
            round_index=self._rounds_played,
            started_at_s=self._scheduler.now(),
            chord=mode.stimulus_chord(),
        )
        self._context = context
        self._rounds_played += 1
        mode.on_start_new_round(context)
        self._arm_round_timeout()

        self._machine.transition_round(RoundState.WAITING_INPUT)
        self._channel.emit(
            EventName.ROUND_START,
            RoundStart(
                context=context,
                note_duration=self._timing.note_duration,
                feedback=mode.feedback_message(),
            ),
        )
        return context

    def submit_guess(self, guess: NoteWithOctave | str) -> GuessOutcome | None:
        """Score a guess for the current round.

        Returns None (and changes nothing) unless a round is waiting for input,
        e.g. after the round already timed out.
        """

        self._require(SessionState.PLAYING, "submit_guess")
        if isinstance(guess, str):
            guess = parse_note(guess)
        if self.round_state is not RoundState.WAITING_INPUT or self._context is None:
            logger.debug(f"Ignored guess {guess} in round state {self.round_state}")
            return None
        mode = self._mode
        assert mode is not None

        remaining = self._round_timer.remaining_s()
        self._round_timer.cancel()

        context = replace(self._context, attempts=self._context.attempts + 1, last_guess=guess)
        self._context = context
        is_correct = mode.validate_guess(guess, context.stimulus)
        outcome = mode.handle_correct_guess(context) if is_correct else mode.handle_incorrect_guess(context)
        logger.debug(f"Guess {guess} for {context.stimulus}: correct={is_correct}")

        self._machine.transition_round(
            RoundState.CORRECT_FEEDBACK if is_correct else RoundState.INCORRECT_FEEDBACK
        )
        self._channel.emit(
            EventName.GUESS_RESULT,
            GuessResult(
                context=context,
                guess=guess,
                is_correct=is_correct,
                feedback=outcome.feedback,
                should_advance=outcome.should_advance,
                game_completed=outcome.game_completed,
                stats=outcome.stats,
            ),
        )
        if self.session_state is not SessionState.PLAYING:
            return outcome

        if outcome.game_completed or mode.is_game_complete(context):
            self._complete_session()
        elif outcome.should_advance:
            self.begin_new_round()
        else:
            self._machine.transition_round(RoundState.WAITING_INPUT)
            if remaining is not None:
                self._arm_round_timeout(remaining)
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _forward_transition(self, change: StateChange) -> None:
        self._channel.emit(EventName.STATE_CHANGE, change)

    def _attach_forwarding(self) -> None:
        self._detach_forwarding()
        self._forwarding = self._machine.subscribe(self._forward_transition)

    def _detach_forwarding(self) -> None:
        if self._forwarding is not None:
            self._forwarding()
            self._forwarding = None

    def _require(self, state: SessionState, op: str) -> None:
        if self.session_state is not state:
            raise InvalidStateError(f"{op}() requires {state}, session is {self.session_state}")

    def _require_not_stopped(self, op: str) -> None:
        if self._stopped:
            raise InvalidStateError(f"{op}() after stop(); call start() first")

    @staticmethod
    def _validated_filter(note_filter: NoteFilter) -> NoteFilter:
        if not isinstance(note_filter, NoteFilter):
            raise InvalidSettingsError(f"expected a NoteFilter, got {type(note_filter).__name__}")
        if not note_filter.playable_notes():
            raise InvalidSettingsError("note filter permits no notes")
        return note_filter

    def _cancel_timers(self) -> None:
        self._round_timer.cancel()
        self._session_timer.stop()

    def _rearm_after_reconfigure(self) -> None:
        state = self.session_state
        if state not in (SessionState.PLAYING, SessionState.PAUSED):
            return
        # The replacement mode starts its own session clock from here.
        self._session_timer.start(self._on_session_tick)
        if self._context is not None and self._mode is not None:
            self._mode.on_start_new_round(self._context)

        round_state = self.round_state
        pending: tuple[RoundTimerKind, float] | None = None
        if round_state is RoundState.WAITING_INPUT and self._timing.response_time_limit_s is not None:
            pending = (RoundTimerKind.TIMEOUT, self._timing.response_time_limit_s)
        elif round_state is RoundState.TIMEOUT_INTERMISSION:
            pending = (RoundTimerKind.AUTO_ADVANCE, self._timing.auto_advance_s)

        if state is SessionState.PAUSED:
            self._session_timer.pause()
            self._paused_round = pending
            return
        if pending is None:
            return
        kind, delay = pending
        if kind is RoundTimerKind.TIMEOUT:
            self._arm_round_timeout(delay)
        else:
            self._arm_auto_advance(delay)

    def _arm_round_timeout(self, delay_s: float | None = None) -> None:
        limit = self._timing.response_time_limit_s
        if limit is None:
            self._round_timer.cancel()
            return
        self._round_timer.arm(
            RoundTimerKind.TIMEOUT,
            limit if delay_s is None else delay_s,
            self._recovering(self._handle_round_timeout, "round-timeout"),
        )

    def _arm_auto_advance(self, delay_s: float | None = None) -> None:
        self._round_timer.arm(
            RoundTimerKind.AUTO_ADVANCE,
            self._timing.auto_advance_s if delay_s is None else delay_s,
            self._recovering(self._auto_advance, "auto-advance"),
        )

    def _recovering(self, callback: Callable[[], None], name: str) -> Callable[[], None]:
        def _run() -> None:
            try:
                callback()
            except Exception:
                logger.exception(f"Timer {name!r} failed; abandoning the round")
                self._recover_with_new_round()

        return _run

    def _recover_with_new_round(self) -> None:
        if self.session_state is not SessionState.PLAYING:
            return
        try:
            self.begin_new_round()
        except Exception:
            logger.exception("Could not begin a new round after a timer fault")

    def _handle_round_timeout(self) -> None:
        context = self._context
        mode = self._mode
        if (
            self.session_state is not SessionState.PLAYING
            or self.round_state is not RoundState.WAITING_INPUT
            or context is None
            or mode is None
        ):
            return
        self._timeouts += 1
        logger.debug(f"Round {context.round_index} timed out; answer was {context.stimulus}")
        self._machine.transition_round(RoundState.TIMEOUT_INTERMISSION, revealed=context.stimulus)

        outcome = mode.handle_incorrect_guess(context)
        self._channel.emit(
            EventName.GUESS_RESULT,
            GuessResult(
                context=context,
                guess=None,
                is_correct=False,
                feedback=f"Time's up! The correct answer was {context.answer_text}. {outcome.feedback}",
                should_advance=False,
                game_completed=outcome.game_completed,
                stats=outcome.stats,
            ),
        )
        if self.session_state is not SessionState.PLAYING:
            return
        if outcome.game_completed or mode.is_game_complete(context):
            self._complete_session()
            return
        self._arm_auto_advance()

    def _auto_advance(self) -> None:
        if self.session_state is SessionState.PLAYING and self.round_state is RoundState.TIMEOUT_INTERMISSION:
            self.begin_new_round()

    def _on_session_tick(self, elapsed_s: float, delta_s: float) -> None:
        try:
            self._session_tick(elapsed_s, delta_s)
        except Exception:
            logger.exception("Session tick failed")

    def _session_tick(self, elapsed_s: float, delta_s: float) -> None:
        if self.session_state is not SessionState.PLAYING:
            return
        mode = self._mode
        if mode is not None:
            mode.on_session_tick(elapsed_s, delta_s)

        round_elapsed = None if self._context is None else self._scheduler.now() - self._context.started_at_s
        duration = None if mode is None else mode.session_duration_s
        remaining = None if duration is None else max(0.0, duration - elapsed_s)
        if self._on_timer_update is not None and round_elapsed is not None:
            self._on_timer_update(round_elapsed)
        if self._on_session_timer_update is not None:
            self._on_session_timer_update(elapsed_s, remaining)
        self._channel.emit(
            EventName.TIMER_TICK,
            TimerTick(round_elapsed_s=round_elapsed, session_elapsed_s=elapsed_s, session_remaining_s=remaining),
        )

        if self.session_state is SessionState.PLAYING and mode is not None and mode.is_game_complete(self._context):
            self._complete_session()

    def _complete_session(self) -> None:
        self._cancel_timers()
        self._paused_round = None
        mode = self._mode
        assert mode is not None
        mode.is_completed = True
        report = session_report_from_mode(mode, rounds_played=self._rounds_played, timeouts=self._timeouts)
        self._last_report = report
        self._machine.transition_session(SessionState.COMPLETED)
        logger.info(
            f"Session completed: mode={report.mode} correct={report.stats.correct_attempts}/"
            f"{report.stats.total_attempts} rounds={report.rounds_played}"
        )
        self._channel.emit(EventName.SESSION_COMPLETE, SessionComplete(report=report))
