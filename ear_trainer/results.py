from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from .mode_core import GameStats, ModeId, ModeState


@dataclass(frozen=True, slots=True)
class SessionReport:
    """End-of-session summary handed to subscribers and to the history store."""

    mode: ModeId
    completed_at_utc: str
    stats: GameStats
    rounds_played: int
    timeouts: int
    settings: dict[str, Any] = field(default_factory=dict)
    results: dict[str, Any] = field(default_factory=dict)


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def session_report_from_mode(mode_state: ModeState, *, rounds_played: int, timeouts: int) -> SessionReport:
    """Build a SessionReport from a finished (or aborted) mode."""

    return SessionReport(
        mode=mode_state.mode,
        completed_at_utc=_utc_now_iso(),
        stats=mode_state.final_stats(),
        rounds_played=int(rounds_played),
        timeouts=int(timeouts),
        settings=dict(mode_state.session_settings()),
        results=dict(mode_state.session_results()),
    )
