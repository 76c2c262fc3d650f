from __future__ import annotations

from typing import Any

from .mode_core import GuessOutcome, ModeId, ModeState, RoundContext, SeededRng
from .settings import SandboxSettings


class SandboxMode(ModeState):
    """Free practice for a fixed duration.

    Targets are informational only: meeting one is reported but the session
    still runs until ``session_duration`` elapses.
    """

    mode_id = ModeId.SANDBOX

    def __init__(self, settings: SandboxSettings, *, rng: SeededRng | None = None) -> None:
        super().__init__(rng=rng)
        self._settings = settings

    @property
    def settings(self) -> SandboxSettings:
        return self._settings

    @property
    def session_duration_s(self) -> float:
        return self._settings.session_duration_s

    def on_session_tick(self, elapsed_s: float, delta_s: float) -> None:
        if self.is_completed:
            return
        self.elapsed_time = float(elapsed_s)
        if self.elapsed_time >= self.session_duration_s:
            self.is_completed = True

    def handle_correct_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_correct()
        feedback = f"Correct! Accuracy: {self.accuracy():.1f}%"
        if self._settings.target_notes is not None:
            feedback += f" | Notes: {self.correct_attempts}/{self._settings.target_notes}"
        feedback += f" | Streak: {self.current_streak}"
        if self.targets_reached:
            feedback += " | Targets reached"
        return GuessOutcome(feedback=feedback, should_advance=True, game_completed=False)

    def handle_incorrect_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_incorrect()
        return GuessOutcome(
            feedback=f"Incorrect. Accuracy: {self.accuracy():.1f}% | Streak reset",
            should_advance=False,
            game_completed=False,
        )

    def target_status(self) -> dict[str, bool]:
        """Per configured target, whether it has been met so far."""

        s = self._settings
        status: dict[str, bool] = {}
        if s.target_accuracy is not None:
            status["accuracy"] = self.total_attempts > 0 and self.accuracy() >= s.target_accuracy
        if s.target_streak is not None:
            status["streak"] = self.longest_streak >= s.target_streak
        if s.target_notes is not None:
            status["notes"] = self.correct_attempts >= s.target_notes
        return status

    @property
    def targets_reached(self) -> bool:
        status = self.target_status()
        return bool(status) and all(status.values())

    def feedback_message(self) -> str:
        if not self.started:
            return "Press Start to begin your practice session"
        return "Listen to the note and identify it on the keyboard"

    def session_settings(self) -> dict[str, Any]:
        return self._settings.as_dict()

    def session_results(self) -> dict[str, Any]:
        results = super().session_results()
        results["targets"] = self.target_status()
        results["targets_reached"] = self.targets_reached
        return results
