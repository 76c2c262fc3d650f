from __future__ import annotations

import logging
from collections.abc import Callable

from .errors import InvalidStateError
from .events import RoundState, SessionState, StateChange, Unsubscribe
from .music import NoteWithOctave

logger = logging.getLogger(__name__)

_SESSION_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.PLAYING}),
    SessionState.PLAYING: frozenset({SessionState.PAUSED, SessionState.COMPLETED, SessionState.IDLE}),
    SessionState.PAUSED: frozenset({SessionState.PLAYING, SessionState.COMPLETED, SessionState.IDLE}),
    SessionState.COMPLETED: frozenset({SessionState.IDLE}),
}


class SessionMachine:
    """Holds ``(SessionState, RoundState)`` and notifies observers of every transition.

    Round states only change while the session is PLAYING. Leaving PLAYING for
    PAUSED keeps the round state so resuming can pick the round up again.
    """

    def __init__(self) -> None:
        self._session = SessionState.IDLE
        self._round: RoundState | None = None
        self._observers: list[Callable[[StateChange], None]] = []

    @property
    def session_state(self) -> SessionState:
        return self._session

    @property
    def round_state(self) -> RoundState | None:
        return self._round

    def subscribe(self, observer: Callable[[StateChange], None]) -> Unsubscribe:
        def entry(change: StateChange) -> None:
            observer(change)

        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    def observer_count(self) -> int:
        return len(self._observers)

    def transition_session(self, target: SessionState) -> None:
        if target not in _SESSION_TRANSITIONS[self._session]:
            raise InvalidStateError(f"cannot go from {self._session} to {target}")
        logger.debug(f"Session {self._session} -> {target}")
        self._session = target
        if target in (SessionState.IDLE, SessionState.COMPLETED):
            self._round = None
        self._notify(StateChange(session_state=self._session, round_state=self._round))

    def transition_round(self, target: RoundState, *, revealed: NoteWithOctave | None = None) -> None:
        if self._session is not SessionState.PLAYING:
            raise InvalidStateError(f"round state cannot change while {self._session}")
        logger.debug(f"Round {self._round} -> {target}")
        self._round = target
        self._notify(StateChange(session_state=self._session, round_state=target, revealed=revealed))

    def _notify(self, change: StateChange) -> None:
        for observer in list(self._observers):
            observer(change)
