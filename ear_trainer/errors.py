from __future__ import annotations


class TrainerError(Exception):
    """Base class for errors raised by the ear trainer core."""


class DuplicateModeError(TrainerError):
    def __init__(self, mode_id: str) -> None:
        super().__init__(f"mode {mode_id!r} is already registered")
        self.mode_id = mode_id


class ModeNotFoundError(TrainerError, LookupError):
    def __init__(self, mode_id: str) -> None:
        super().__init__(f"mode {mode_id!r} is not registered")
        self.mode_id = mode_id


class InvalidStateError(TrainerError, RuntimeError):
    """Operation called outside the session state it is valid in."""


class InvalidSettingsError(TrainerError, ValueError):
    """Malformed mode, timing or filter settings."""
