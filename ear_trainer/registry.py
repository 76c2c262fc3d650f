"""Catalog of practice modes.

The process-wide registry is filled once, by ``default_registry()``, and is
not mutated afterwards. Tests build their own ``ModeRegistry()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, assert_never

from .chord_training import ChordTrainingMode
from .errors import DuplicateModeError, InvalidSettingsError, ModeNotFoundError
from .mode_core import ModeId, ModeState, SeededRng, TrainingType
from .rush import RushMode
from .sandbox import SandboxMode
from .settings import ChordTrainingSettings, RushSettings, SandboxSettings, SurvivalSettings
from .survival import SurvivalMode

logger = logging.getLogger(__name__)

ModeFactory = Callable[..., ModeState]


@dataclass(frozen=True, slots=True)
class ModeDescriptor:
    id: str
    training_type: TrainingType
    title: str
    description: str
    settings_key: str
    settings_type: type
    factory: ModeFactory
    icon: str = ""
    default_settings: Any = field(default=None)

    def parse_settings(self, bag: Any) -> Any:
        """Build this mode's settings record from a settings bag.

        ``bag`` may be the record itself, a mapping of the record's fields, or
        a mapping holding those fields under ``settings_key``.
        """

        if bag is None:
            return self.default_settings if self.default_settings is not None else self.settings_type()
        if isinstance(bag, self.settings_type):
            return bag
        if not isinstance(bag, Mapping):
            raise InvalidSettingsError(f"settings for {self.id!r} must be a mapping")
        raw = bag.get(self.settings_key, bag)
        return self.settings_type.from_mapping(raw)

    def create(self, settings: Any, *, rng: SeededRng | None = None) -> ModeState:
        state = self.factory(settings, rng=rng)
        if not isinstance(state, ModeState):
            raise InvalidSettingsError(f"factory for {self.id!r} returned {type(state).__name__}")
        return state


class ModeRegistry:
    def __init__(self) -> None:
        self._modes: dict[str, ModeDescriptor] = {}

    def register(self, descriptor: ModeDescriptor) -> None:
        if not descriptor.id:
            raise InvalidSettingsError("mode descriptor must have an id")
        if not descriptor.title:
            raise InvalidSettingsError(f"mode {descriptor.id!r} must have a title")
        if not descriptor.description:
            raise InvalidSettingsError(f"mode {descriptor.id!r} must have a description")
        if not callable(descriptor.factory):
            raise InvalidSettingsError(f"mode {descriptor.id!r} must have a callable factory")
        if descriptor.id in self._modes:
            raise DuplicateModeError(str(descriptor.id))
        self._modes[descriptor.id] = descriptor
        logger.debug(f"Registered mode {descriptor.id!r} ({descriptor.training_type})")

    def get(self, mode_id: str) -> ModeDescriptor:
        try:
            return self._modes[mode_id]
        except KeyError:
            raise ModeNotFoundError(str(mode_id)) from None

    def get_all(self) -> list[ModeDescriptor]:
        return list(self._modes.values())

    def get_all_by_type(self, training_type: TrainingType) -> list[ModeDescriptor]:
        return [d for d in self._modes.values() if d.training_type == training_type]

    def is_registered(self, mode_id: str) -> bool:
        return mode_id in self._modes

    def __len__(self) -> int:
        return len(self._modes)


def builtin_descriptor(mode_id: ModeId) -> ModeDescriptor:
    if mode_id is ModeId.RUSH:
        return ModeDescriptor(
            id=ModeId.RUSH,
            training_type=TrainingType.EAR_TRAINING,
            title="Rush",
            description="Race to hit your target note count as fast as possible",
            icon="R",
            settings_key="rush",
            settings_type=RushSettings,
            default_settings=RushSettings(),
            factory=RushMode,
        )
    if mode_id is ModeId.SURVIVAL:
        return ModeDescriptor(
            id=ModeId.SURVIVAL,
            training_type=TrainingType.EAR_TRAINING,
            title="Survival",
            description="Survive the time limit while keeping your health up",
            icon="S",
            settings_key="survival",
            settings_type=SurvivalSettings,
            default_settings=SurvivalSettings(),
            factory=SurvivalMode,
        )
    if mode_id is ModeId.SANDBOX:
        return ModeDescriptor(
            id=ModeId.SANDBOX,
            training_type=TrainingType.EAR_TRAINING,
            title="Sandbox",
            description="Practice at your own pace with optional targets",
            icon="B",
            settings_key="sandbox",
            settings_type=SandboxSettings,
            default_settings=SandboxSettings(),
            factory=SandboxMode,
        )
    if mode_id is ModeId.CHORD_TRAINING:
        return ModeDescriptor(
            id=ModeId.CHORD_TRAINING,
            training_type=TrainingType.NOTE_TRAINING,
            title="Chord Training",
            description="Identify individual notes in chords",
            icon="N",
            settings_key="note_training",
            settings_type=ChordTrainingSettings,
            default_settings=ChordTrainingSettings(),
            factory=ChordTrainingMode,
        )
    assert_never(mode_id)


def register_builtin_modes(registry: ModeRegistry) -> ModeRegistry:
    for mode_id in ModeId:
        registry.register(builtin_descriptor(mode_id))
    return registry


_DEFAULT_REGISTRY: ModeRegistry | None = None


def default_registry() -> ModeRegistry:
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = register_builtin_modes(ModeRegistry())
    return _DEFAULT_REGISTRY
