from __future__ import annotations

from typing import Any

from .mode_core import GuessOutcome, ModeId, ModeState, RoundContext, SeededRng, clamp, format_clock
from .settings import SurvivalSettings

MAX_HEALTH = 100.0


class SurvivalMode(ModeState):
    """Keep health above zero until the session duration runs out.

    Health drains continuously with session time, recovers on correct
    guesses and takes damage on misses (timeouts count as misses).
    """

    mode_id = ModeId.SURVIVAL

    def __init__(self, settings: SurvivalSettings, *, rng: SeededRng | None = None) -> None:
        super().__init__(rng=rng)
        self._settings = settings
        self.health = MAX_HEALTH
        self.max_health = MAX_HEALTH
        self.survived = False

    def reset(self) -> None:
        super().reset()
        self.health = self.max_health
        self.survived = False

    @property
    def settings(self) -> SurvivalSettings:
        return self._settings

    @property
    def session_duration_s(self) -> float:
        return self._settings.session_duration_s

    def on_session_tick(self, elapsed_s: float, delta_s: float) -> None:
        if self.is_completed:
            return
        self.elapsed_time = float(elapsed_s)
        self.health = clamp(self.health - self._settings.health_drain_rate * delta_s, 0.0, MAX_HEALTH)
        self._check_end()

    def handle_correct_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_correct()
        self.health = clamp(self.health + self._settings.health_recovery, 0.0, MAX_HEALTH)
        if self._check_end():
            return GuessOutcome(
                feedback=f"Survival complete! You survived {self._settings.session_duration:g} minutes!",
                should_advance=False,
                game_completed=True,
                stats=self.final_stats(),
            )
        return GuessOutcome(
            feedback=f"Correct! +{self._settings.health_recovery:g} HP ({self.health_percent()}% health)",
            should_advance=True,
            game_completed=False,
        )

    def handle_incorrect_guess(self, context: RoundContext) -> GuessOutcome:
        self._count_incorrect()
        self.health = clamp(self.health - self._settings.health_damage, 0.0, MAX_HEALTH)
        if self._check_end():
            return GuessOutcome(
                feedback=f"Game over! You survived {format_clock(self.elapsed_time)}",
                should_advance=False,
                game_completed=True,
                stats=self.final_stats(),
            )
        return GuessOutcome(
            feedback=(
                f"Wrong! -{self._settings.health_damage:g} HP "
                f"({self.health_percent()}% health remaining)"
            ),
            should_advance=False,
            game_completed=False,
        )

    def is_game_complete(self, context: RoundContext | None = None) -> bool:
        return self.is_completed

    def health_percent(self) -> int:
        return int(round(self.health / self.max_health * 100.0))

    def feedback_message(self) -> str:
        if not self.started:
            return "Press Start to begin survival mode"
        return f"Health: {self.health_percent()}%"

    def session_settings(self) -> dict[str, Any]:
        return self._settings.as_dict()

    def session_results(self) -> dict[str, Any]:
        results = super().session_results()
        results["final_health"] = self.health
        results["survived"] = self.survived
        return results

    def _check_end(self) -> bool:
        if self.is_completed:
            return True
        if self.health <= 0.0:
            self.is_completed = True
            self.survived = False
        elif self.elapsed_time >= self.session_duration_s:
            self.is_completed = True
            self.survived = True
        return self.is_completed
