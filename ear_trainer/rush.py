from __future__ import annotations

from typing import Any

from .mode_core import GuessOutcome, ModeId, ModeState, RoundContext, SeededRng, TimerMode, format_clock
from .settings import RushSettings


class RushMode(ModeState):
    """Race to a target count of correct notes; the clock counts up."""

    mode_id = ModeId.RUSH
    timer_mode = TimerMode.COUNT_UP

    def __init__(self, settings: RushSettings, *, rng: SeededRng | None = None) -> None:
        super().__init__(rng=rng)
        self._settings = settings
        self.completion_time_s: float | None = None

    def reset(self) -> None:
        super().reset()
        self.completion_time_s = None

    @property
    def settings(self) -> RushSettings:
        return self._settings

    @property
    def target_notes(self) -> int:
        return int(self._settings.target_notes)

    def handle_correct_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_correct()
        if self.correct_attempts >= self.target_notes:
            self.is_completed = True
            self.completion_time_s = self.elapsed_time
            return GuessOutcome(
                feedback=f"Rush complete! {self.correct_attempts}/{self.target_notes} notes",
                should_advance=False,
                game_completed=True,
                stats=self.final_stats(),
            )
        return GuessOutcome(
            feedback=(
                f"Correct! {self.correct_attempts}/{self.target_notes} notes "
                f"({format_clock(self.elapsed_time)})"
            ),
            should_advance=True,
            game_completed=False,
        )

    def handle_incorrect_guess(self, context: RoundContext) -> GuessOutcome:
        # The count toward the target survives a miss; only the streak resets.
        self._count_incorrect()
        return GuessOutcome(feedback="Try again!", should_advance=False, game_completed=False)

    def is_game_complete(self, context: RoundContext | None = None) -> bool:
        return self.is_completed or self.correct_attempts >= self.target_notes

    def feedback_message(self) -> str:
        if not self.started:
            return "Press Start to begin your rush"
        return f"Identify the note ({self.correct_attempts}/{self.target_notes})"

    def session_settings(self) -> dict[str, Any]:
        return {"target_notes": self.target_notes}
