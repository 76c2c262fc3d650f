"""Typed publish/subscribe channel used to broadcast orchestrator transitions.

Each event name has one payload type. Handlers run synchronously in
subscription order and must not block.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .mode_core import GameStats, ModeId, RoundContext
from .music import NoteDuration, NoteWithOctave

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class SessionState(StrEnum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


class RoundState(StrEnum):
    WAITING_INPUT = "waiting_input"
    CORRECT_FEEDBACK = "correct_feedback"
    INCORRECT_FEEDBACK = "incorrect_feedback"
    TIMEOUT_INTERMISSION = "timeout_intermission"


class EventName(StrEnum):
    STATE_CHANGE = "stateChange"
    ROUND_START = "roundStart"
    GUESS_RESULT = "guessResult"
    TIMER_TICK = "timerTick"
    SESSION_START = "sessionStart"
    SESSION_COMPLETE = "sessionComplete"


@dataclass(frozen=True, slots=True)
class StateChange:
    session_state: SessionState
    round_state: RoundState | None
    # The stimulus being revealed, set on entry into the timeout intermission.
    revealed: NoteWithOctave | None = None


@dataclass(frozen=True, slots=True)
class RoundStart:
    context: RoundContext
    note_duration: NoteDuration
    feedback: str


@dataclass(frozen=True, slots=True)
class GuessResult:
    context: RoundContext
    guess: NoteWithOctave | None  # None when the round timed out
    is_correct: bool
    feedback: str
    should_advance: bool
    game_completed: bool
    stats: GameStats | None = None


@dataclass(frozen=True, slots=True)
class TimerTick:
    round_elapsed_s: float | None
    session_elapsed_s: float
    session_remaining_s: float | None


@dataclass(frozen=True, slots=True)
class SessionStart:
    mode: ModeId | None


@dataclass(frozen=True, slots=True)
class SessionComplete:
    report: Any  # results.SessionReport


EVENT_PAYLOADS: dict[EventName, type] = {
    EventName.STATE_CHANGE: StateChange,
    EventName.ROUND_START: RoundStart,
    EventName.GUESS_RESULT: GuessResult,
    EventName.TIMER_TICK: TimerTick,
    EventName.SESSION_START: SessionStart,
    EventName.SESSION_COMPLETE: SessionComplete,
}


class EventChannel:
    def __init__(self) -> None:
        self._handlers: dict[EventName, list[Callable[[Any], None]]] = {}

    def on(self, event: EventName | str, handler: Callable[[Any], None]) -> Unsubscribe:
        name = EventName(event)
        handlers = self._handlers.setdefault(name, [])
        # Wrapped so the same callable subscribed twice gets two distinct tokens.
        def entry(payload: Any) -> None:
            handler(payload)

        handlers.append(entry)

        def unsubscribe() -> None:
            current = self._handlers.get(name)
            if current is not None and entry in current:
                current.remove(entry)

        return unsubscribe

    def emit(self, event: EventName, payload: Any) -> None:
        expected = EVENT_PAYLOADS[event]
        if not isinstance(payload, expected):
            raise TypeError(f"{event} expects {expected.__name__}, got {type(payload).__name__}")
        logger.debug(f"Emitting {event}: {payload}")
        # Snapshot so handlers may unsubscribe while being dispatched.
        for handler in list(self._handlers.get(event, ())):
            handler(payload)

    def listener_count(self, event: EventName | str) -> int:
        return len(self._handlers.get(EventName(event), ()))
