from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from .chords import Chord
from .errors import InvalidSettingsError
from .music import NoteFilter, NoteWithOctave


class ModeId(StrEnum):
    RUSH = "rush"
    SURVIVAL = "survival"
    SANDBOX = "sandbox"
    CHORD_TRAINING = "show-chord-guess-notes"


class TrainingType(StrEnum):
    EAR_TRAINING = "ear-training"
    NOTE_TRAINING = "note-training"


class TimerMode(StrEnum):
    COUNT_UP = "count-up"
    COUNT_DOWN = "count-down"


@dataclass(frozen=True, slots=True)
class RoundContext:
    stimulus: NoteWithOctave
    round_index: int
    started_at_s: float
    attempts: int = 0
    chord: Chord | None = None
    last_guess: NoteWithOctave | None = None

    @property
    def answer_text(self) -> str:
        if self.chord is not None:
            return f"{self.chord.name} ({self.chord.spelled()})"
        return self.stimulus.note

    def sounding_notes(self) -> tuple[NoteWithOctave, ...]:
        return self.chord.notes if self.chord is not None else (self.stimulus,)


@dataclass(frozen=True, slots=True)
class GameStats:
    completion_time_s: float
    accuracy: float  # percent
    average_time_per_note_s: float
    longest_streak: int
    total_attempts: int
    correct_attempts: int


@dataclass(frozen=True, slots=True)
class GuessOutcome:
    feedback: str
    should_advance: bool
    game_completed: bool
    stats: GameStats | None = None


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq):
        return self._rng.choice(seq)


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x <= lo else hi if x >= hi else float(x)


def format_clock(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


class ModeState(ABC):
    """Per-session rules for one practice mode.

    The orchestrator owns exactly one instance for the session's lifetime and
    replaces it wholesale when the mode or its settings change. Concrete modes
    are a closed set keyed by ``mode_id``.
    """

    mode_id: ClassVar[ModeId]
    timer_mode: ClassVar[TimerMode] = TimerMode.COUNT_DOWN

    def __init__(self, *, rng: SeededRng | None = None) -> None:
        self._rng = rng or SeededRng()
        ModeState.reset(self)

    def reset(self) -> None:
        """Clear session progress so the instance can run a fresh session."""

        self.elapsed_time = 0.0
        self.is_completed = False
        self.total_attempts = 0
        self.correct_attempts = 0
        self.current_streak = 0
        self.longest_streak = 0
        self.started = False

    @property
    def has_progress(self) -> bool:
        return self.started or self.is_completed or self.total_attempts > 0 or self.elapsed_time > 0

    @property
    def mode(self) -> ModeId:
        return self.mode_id

    @property
    def session_duration_s(self) -> float | None:
        return None

    def generate_note(self, note_filter: NoteFilter) -> NoteWithOctave:
        playable = note_filter.playable_notes()
        if not playable:
            raise InvalidSettingsError("no playable notes available with the current filter")
        return self._rng.choice(playable)

    def stimulus_chord(self) -> Chord | None:
        return None

    def validate_guess(self, guess: NoteWithOctave, actual: NoteWithOctave) -> bool:
        return guess.note == actual.note

    def on_start_new_round(self, context: RoundContext) -> None:
        if not self.is_completed:
            self.started = True

    def on_session_tick(self, elapsed_s: float, delta_s: float) -> None:
        if not self.is_completed:
            self.elapsed_time = float(elapsed_s)

    def is_game_complete(self, context: RoundContext | None = None) -> bool:
        return self.is_completed

    @abstractmethod
    def handle_correct_guess(self, context: RoundContext) -> GuessOutcome: ...

    @abstractmethod
    def handle_incorrect_guess(self, context: RoundContext) -> GuessOutcome: ...

    @abstractmethod
    def feedback_message(self) -> str: ...

    @abstractmethod
    def session_settings(self) -> dict[str, Any]: ...

    def session_results(self) -> dict[str, Any]:
        stats = self.final_stats()
        return {
            "notes_completed": stats.correct_attempts,
            "longest_streak": stats.longest_streak,
            "average_time_per_note_s": stats.average_time_per_note_s,
        }

    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts * 100.0

    def final_stats(self) -> GameStats:
        return GameStats(
            completion_time_s=float(self.elapsed_time),
            accuracy=self.accuracy(),
            average_time_per_note_s=(
                0.0 if self.correct_attempts == 0 else self.elapsed_time / self.correct_attempts
            ),
            longest_streak=self.longest_streak,
            total_attempts=self.total_attempts,
            correct_attempts=self.correct_attempts,
        )

    def _count_correct(self) -> None:
        self.total_attempts += 1
        self.correct_attempts += 1
        self.current_streak += 1
        self.longest_streak = max(self.longest_streak, self.current_streak)

    def _count_incorrect(self) -> None:
        self.total_attempts += 1
        self.current_streak = 0
