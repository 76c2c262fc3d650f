"""Settings records for modes, round timing and the application shell.

Mode settings are plain frozen records. ``from_mapping`` builds one from the
loosely-typed settings bag a settings screen hands over; keys it does not
know are ignored, known keys with bad values raise ``InvalidSettingsError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, TypeVar

from .errors import InvalidSettingsError
from .chords import CHORD_FILTER_PRESETS, DEFAULT_CHORD_FILTER, ChordFilter
from .music import NoteDuration

_S = TypeVar("_S", bound="_ModeSettingsBase")


def _positive(name: str, value: float) -> None:
    if value <= 0:
        raise InvalidSettingsError(f"{name} must be > 0")


def _non_negative(name: str, value: float) -> None:
    if value < 0:
        raise InvalidSettingsError(f"{name} must be >= 0")


def _numeric_fields(cls: type, raw: Any, *, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise InvalidSettingsError(f"{cls.__name__} expects a mapping, got {type(raw).__name__}")
    known = {f.name for f in fields(cls)} - set(skip)  # type: ignore[arg-type]
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            continue
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise InvalidSettingsError(f"{cls.__name__}.{key} must be a number")
        kwargs[key] = value
    return kwargs


class _ModeSettingsBase:
    __slots__ = ()

    @classmethod
    def from_mapping(cls: type[_S], raw: Mapping[str, Any] | None) -> _S:
        if raw is None:
            return cls()
        return cls(**_numeric_fields(cls, raw))

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class RushSettings(_ModeSettingsBase):
    target_notes: int = 10

    def __post_init__(self) -> None:
        if int(self.target_notes) != self.target_notes:
            raise InvalidSettingsError("target_notes must be a whole number")
        _positive("target_notes", self.target_notes)


@dataclass(frozen=True, slots=True)
class SurvivalSettings(_ModeSettingsBase):
    session_duration: float = 1.0  # minutes
    health_drain_rate: float = 2.0  # health per second
    health_recovery: float = 15.0
    health_damage: float = 25.0

    def __post_init__(self) -> None:
        _positive("session_duration", self.session_duration)
        _non_negative("health_drain_rate", self.health_drain_rate)
        _non_negative("health_recovery", self.health_recovery)
        _non_negative("health_damage", self.health_damage)

    @property
    def session_duration_s(self) -> float:
        return float(self.session_duration) * 60.0


@dataclass(frozen=True, slots=True)
class SandboxSettings(_ModeSettingsBase):
    session_duration: float = 1.0  # minutes
    target_accuracy: float | None = 80.0  # percent
    target_streak: int | None = 10
    target_notes: int | None = None

    def __post_init__(self) -> None:
        _positive("session_duration", self.session_duration)
        if self.target_accuracy is not None and not (0.0 < self.target_accuracy <= 100.0):
            raise InvalidSettingsError("target_accuracy must be in (0, 100]")
        if self.target_streak is not None:
            _positive("target_streak", self.target_streak)
        if self.target_notes is not None:
            _positive("target_notes", self.target_notes)

    @property
    def session_duration_s(self) -> float:
        return float(self.session_duration) * 60.0


@dataclass(frozen=True, slots=True)
class ChordTrainingSettings(_ModeSettingsBase):
    target_chords: int | None = 10
    session_duration: float | None = None  # minutes; None = untimed
    chord_filter: ChordFilter = DEFAULT_CHORD_FILTER

    def __post_init__(self) -> None:
        if self.target_chords is not None:
            if int(self.target_chords) != self.target_chords:
                raise InvalidSettingsError("target_chords must be a whole number")
            _positive("target_chords", self.target_chords)
        if self.session_duration is not None:
            _positive("session_duration", self.session_duration)
        if not isinstance(self.chord_filter, ChordFilter):
            raise InvalidSettingsError(f"chord_filter must be a ChordFilter, got {type(self.chord_filter).__name__}")
        if not self.chord_filter.candidates():
            raise InvalidSettingsError("chord filter permits no chords")

    @property
    def session_duration_s(self) -> float | None:
        if self.session_duration is None:
            return None
        return float(self.session_duration) * 60.0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> ChordTrainingSettings:
        """As for the other modes, plus ``chord_filter`` given as a mapping or a preset name."""

        if raw is None:
            return cls()
        kwargs = _numeric_fields(cls, raw, skip=("chord_filter",))
        chosen = raw.get("chord_filter")
        if isinstance(chosen, str):
            try:
                kwargs["chord_filter"] = CHORD_FILTER_PRESETS[chosen]
            except KeyError:
                raise InvalidSettingsError(f"unknown chord filter preset {chosen!r}") from None
        elif isinstance(chosen, ChordFilter):
            kwargs["chord_filter"] = chosen
        elif chosen is not None:
            try:
                kwargs["chord_filter"] = ChordFilter.from_mapping(chosen)
            except ValueError as exc:
                raise InvalidSettingsError(f"bad chord filter: {exc}") from exc
        return cls(**kwargs)

    def as_dict(self) -> dict[str, Any]:
        return {
            "target_chords": self.target_chords,
            "session_duration": self.session_duration,
            "chord_filter": self.chord_filter.as_dict(),
        }


@dataclass(frozen=True, slots=True)
class TimingSettings:
    response_time_limit_s: float | None = 10.0  # None = unlimited
    auto_advance_ms: float = 1500.0
    note_duration: NoteDuration = NoteDuration.HALF

    def __post_init__(self) -> None:
        if self.response_time_limit_s is not None:
            _positive("response_time_limit_s", self.response_time_limit_s)
        _non_negative("auto_advance_ms", self.auto_advance_ms)
        try:
            object.__setattr__(self, "note_duration", NoteDuration(self.note_duration))
        except ValueError as exc:
            raise InvalidSettingsError(f"unknown note duration {self.note_duration!r}") from exc

    @property
    def auto_advance_s(self) -> float:
        return float(self.auto_advance_ms) / 1000.0


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Process configuration, constructed once at startup."""

    log_level: str = "INFO"
    mode_id: str = "sandbox"
    seed: int | None = None
    db_path: Path | None = None
    midi_input_id: int | None = None

    @staticmethod
    def load_from_env() -> AppConfig:
        seed = os.environ.get("EAR_TRAINER_SEED")
        db_path = os.environ.get("EAR_TRAINER_DB")
        midi_id = os.environ.get("EAR_TRAINER_MIDI_INPUT")
        return AppConfig(
            log_level=os.environ.get("EAR_TRAINER_LOG_LEVEL", "INFO").upper(),
            mode_id=os.environ.get("EAR_TRAINER_MODE", "sandbox"),
            seed=None if not seed else int(seed),
            db_path=None if not db_path else Path(db_path),
            midi_input_id=None if not midi_id else int(midi_id),
        )
