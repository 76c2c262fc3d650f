from __future__ import annotations

from typing import Any

from .chords import Chord
from .errors import InvalidSettingsError
from .mode_core import GuessOutcome, ModeId, ModeState, RoundContext, SeededRng, TimerMode
from .music import NoteFilter, NoteWithOctave
from .settings import ChordTrainingSettings


class ChordTrainingMode(ModeState):
    """Show a chord; the player finds every note in it, one guess per note.

    Octaves do not matter. A chord counts as one correct attempt once all of
    its notes are found. A note outside the chord counts as a missed attempt
    at that chord and the notes already found stay found. Accuracy is
    measured per note: each scored attempt adds the chord's size to the notes
    attempted and the notes found to the notes correct.
    """

    mode_id = ModeId.CHORD_TRAINING
    timer_mode = TimerMode.COUNT_UP

    def __init__(self, settings: ChordTrainingSettings, *, rng: SeededRng | None = None) -> None:
        super().__init__(rng=rng)
        self._settings = settings
        self.current_chord: Chord | None = None
        self.found_notes: set[str] = set()
        self.total_notes_attempted = 0
        self.total_notes_correct = 0

    def reset(self) -> None:
        super().reset()
        self.current_chord = None
        self.found_notes = set()
        self.total_notes_attempted = 0
        self.total_notes_correct = 0

    @property
    def settings(self) -> ChordTrainingSettings:
        return self._settings

    @property
    def target_chords(self) -> int | None:
        return None if self._settings.target_chords is None else int(self._settings.target_chords)

    @property
    def session_duration_s(self) -> float | None:
        return self._settings.session_duration_s

    def generate_note(self, note_filter: NoteFilter) -> NoteWithOctave:
        # Chords come from the chord filter; the note filter does not apply.
        candidates = self._settings.chord_filter.candidates()
        if not candidates:
            raise InvalidSettingsError("chord filter permits no chords")
        self.current_chord = self._rng.choice(candidates)
        self.found_notes = set()
        return self.current_chord.notes[0]

    def stimulus_chord(self) -> Chord | None:
        return self.current_chord

    def on_start_new_round(self, context: RoundContext) -> None:
        super().on_start_new_round(context)
        if context.chord is not None and context.chord != self.current_chord:
            self.current_chord = context.chord
            self.found_notes = set()

    def validate_guess(self, guess: NoteWithOctave, actual: NoteWithOctave) -> bool:
        if self.current_chord is None:
            # A single-note round dealt before this mode was installed.
            return super().validate_guess(guess, actual)
        return self.current_chord.contains(guess)

    def missing_notes(self) -> list[str]:
        if self.current_chord is None:
            return []
        return [n.note for n in self.current_chord.notes if n.note not in self.found_notes]

    def on_session_tick(self, elapsed_s: float, delta_s: float) -> None:
        if self.is_completed:
            return
        self.elapsed_time = float(elapsed_s)
        duration = self.session_duration_s
        if duration is not None and self.elapsed_time >= duration:
            self.is_completed = True

    def handle_correct_guess(self, context: RoundContext) -> GuessOutcome:
        chord = self.current_chord
        if chord is None:
            return self._score_round(1, "Correct!")
        if context.last_guess is not None:
            self.found_notes.add(context.last_guess.note)
        size = len(chord.pitch_classes)
        if len(self.found_notes) < size:
            return GuessOutcome(
                feedback=f"Keep going! {len(self.found_notes)}/{size} notes of {chord.name} found",
                should_advance=False,
                game_completed=False,
            )
        return self._score_round(size, f"Perfect! {chord.name} is {chord.spelled()}")

    def _score_round(self, size: int, praise: str) -> GuessOutcome:
        self._count_correct()
        self.total_notes_attempted += size
        self.total_notes_correct += size
        target = self.target_chords
        if target is not None and self.correct_attempts >= target:
            self.is_completed = True
            return GuessOutcome(
                feedback=f"Chord training complete! {self.correct_attempts}/{target} chords identified",
                should_advance=False,
                game_completed=True,
                stats=self.final_stats(),
            )
        progress = f"{self.correct_attempts}/{target}" if target is not None else str(self.correct_attempts)
        return GuessOutcome(
            feedback=f"{praise} - {progress} chords identified",
            should_advance=True,
            game_completed=False,
        )

    def handle_incorrect_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_incorrect()
        chord = self.current_chord
        if chord is None:
            return GuessOutcome(feedback="Not quite right. Keep trying!", should_advance=False, game_completed=False)

        size = len(chord.pitch_classes)
        found = len(self.found_notes)
        self.total_notes_attempted += size
        self.total_notes_correct += found
        if found:
            feedback = f"{found / size * 100.0:.1f}% - {found} of {size} notes found, {size - found} missing. "
        else:
            feedback = "0% - Not quite right. "
        return GuessOutcome(feedback=feedback + "Try again!", should_advance=False, game_completed=False)

    def is_game_complete(self, context: RoundContext | None = None) -> bool:
        if self.is_completed:
            return True
        target = self.target_chords
        return target is not None and self.correct_attempts >= target

    def accuracy(self) -> float:
        if self.total_notes_attempted == 0:
            return 0.0
        return self.total_notes_correct / self.total_notes_attempted * 100.0

    def feedback_message(self) -> str:
        if not self.started or self.current_chord is None:
            return "Press Start to begin chord training"
        size = len(self.current_chord.pitch_classes)
        return f"Find every note in {self.current_chord.name} ({len(self.found_notes)}/{size} found)"

    def session_settings(self) -> dict[str, Any]:
        return self._settings.as_dict()

    def session_results(self) -> dict[str, Any]:
        stats = self.final_stats()
        return {
            "chords_completed": stats.correct_attempts,
            "longest_streak": stats.longest_streak,
            "average_time_per_chord_s": stats.average_time_per_note_s,
            "accuracy": stats.accuracy,
        }
