from __future__ import annotations

from dataclasses import replace

import pytest

from ear_trainer.chord_training import ChordTrainingMode
from ear_trainer.errors import DuplicateModeError, InvalidSettingsError, ModeNotFoundError
from ear_trainer.mode_core import ModeId, TrainingType
from ear_trainer.registry import ModeRegistry, builtin_descriptor, default_registry, register_builtin_modes
from ear_trainer.rush import RushMode
from ear_trainer.settings import (
    ChordTrainingSettings,
    RushSettings,
    SandboxSettings,
    SurvivalSettings,
    TimingSettings,
)
from ear_trainer.survival import SurvivalMode


def test_builtin_modes_register_in_declaration_order() -> None:
    registry = register_builtin_modes(ModeRegistry())
    assert [d.id for d in registry.get_all()] == [
        ModeId.RUSH,
        ModeId.SURVIVAL,
        ModeId.SANDBOX,
        ModeId.CHORD_TRAINING,
    ]
    assert len(registry.get_all_by_type(TrainingType.EAR_TRAINING)) == 3
    assert [d.id for d in registry.get_all_by_type(TrainingType.NOTE_TRAINING)] == ["show-chord-guess-notes"]
    assert registry.is_registered("survival")
    assert not registry.is_registered("marathon")


def test_duplicate_registration_is_rejected() -> None:
    registry = ModeRegistry()
    registry.register(builtin_descriptor(ModeId.RUSH))
    with pytest.raises(DuplicateModeError) as exc:
        registry.register(builtin_descriptor(ModeId.RUSH))
    assert exc.value.mode_id == "rush"
    assert len(registry) == 1


def test_descriptor_without_title_is_rejected() -> None:
    registry = ModeRegistry()
    with pytest.raises(InvalidSettingsError):
        registry.register(replace(builtin_descriptor(ModeId.RUSH), title=""))
    assert len(registry) == 0


def test_unknown_mode_lookup_raises() -> None:
    with pytest.raises(ModeNotFoundError):
        ModeRegistry().get("rush")
    with pytest.raises(LookupError):
        default_registry().get("marathon")


def test_parse_settings_accepts_record_fields_or_keyed_bag() -> None:
    rush = default_registry().get(ModeId.RUSH)
    assert rush.parse_settings(None) == RushSettings()
    assert rush.parse_settings(RushSettings(target_notes=4)).target_notes == 4
    assert rush.parse_settings({"target_notes": 7}).target_notes == 7
    assert rush.parse_settings({"rush": {"target_notes": 3}, "survival": {}}).target_notes == 3
    # Unknown keys are ignored.
    assert rush.parse_settings({"target_notes": 5, "theme": "dark"}).target_notes == 5


def test_parse_settings_rejects_bad_values() -> None:
    rush = default_registry().get(ModeId.RUSH)
    with pytest.raises(InvalidSettingsError):
        rush.parse_settings({"target_notes": "ten"})
    with pytest.raises(InvalidSettingsError):
        rush.parse_settings({"target_notes": 0})
    with pytest.raises(InvalidSettingsError):
        rush.parse_settings(["target_notes", 3])


def test_create_builds_the_mode_strategy() -> None:
    registry = default_registry()
    rush = registry.get("rush").create(RushSettings(target_notes=2))
    survival = registry.get("survival").create(SurvivalSettings())
    assert isinstance(rush, RushMode) and rush.target_notes == 2
    assert isinstance(survival, SurvivalMode) and survival.health == 100.0

    chords = registry.get(ModeId.CHORD_TRAINING)
    settings = chords.parse_settings({"note_training": {"target_chords": 3, "chord_filter": "basic-triads"}})
    assert isinstance(settings, ChordTrainingSettings) and settings.target_chords == 3
    chord_mode = chords.create(settings)
    assert isinstance(chord_mode, ChordTrainingMode) and chord_mode.target_chords == 3


def test_mode_settings_validation() -> None:
    assert SurvivalSettings(session_duration=2).session_duration_s == 120.0
    assert SandboxSettings().session_duration_s == 60.0
    with pytest.raises(InvalidSettingsError):
        SurvivalSettings(health_damage=-1)
    with pytest.raises(InvalidSettingsError):
        SandboxSettings(target_accuracy=150)
    with pytest.raises(InvalidSettingsError):
        RushSettings(target_notes=2.5)


def test_timing_settings_normalise_note_duration() -> None:
    timing = TimingSettings(response_time_limit_s=None, auto_advance_ms=250, note_duration="4n")
    assert timing.note_duration == "4n"
    assert timing.auto_advance_s == 0.25
    with pytest.raises(InvalidSettingsError):
        TimingSettings(note_duration="3n")
    with pytest.raises(InvalidSettingsError):
        TimingSettings(response_time_limit_s=0)
