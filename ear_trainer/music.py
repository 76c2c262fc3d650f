from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

NOTE_NAMES: tuple[str, ...] = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
WHITE_KEYS: tuple[str, ...] = ("C", "D", "E", "F", "G", "A", "B")
BLACK_KEYS: tuple[str, ...] = ("C#", "D#", "F#", "G#", "A#")

MIN_OCTAVE = 1
MAX_OCTAVE = 8

MIDI_NOTE_OFF = 0x80
MIDI_NOTE_ON = 0x90
MIDI_STATUS_MASK = 0xF0


class KeyType(StrEnum):
    WHITE = "white"
    BLACK = "black"
    ALL = "all"


class NoteDuration(StrEnum):
    EIGHTH = "8n"
    QUARTER = "4n"
    HALF = "2n"
    WHOLE = "1n"


@dataclass(frozen=True, slots=True)
class NoteWithOctave:
    note: str
    octave: int

    def __post_init__(self) -> None:
        if self.note not in NOTE_NAMES:
            raise ValueError(f"unknown note name {self.note!r}")
        if not (MIN_OCTAVE <= self.octave <= MAX_OCTAVE):
            raise ValueError(f"octave must be in [{MIN_OCTAVE}, {MAX_OCTAVE}]")

    @property
    def is_black_key(self) -> bool:
        return self.note in BLACK_KEYS

    @property
    def midi_number(self) -> int:
        return note_to_midi(self)

    def __str__(self) -> str:
        return f"{self.note}{self.octave}"


@dataclass(frozen=True, slots=True)
class NoteFilter:
    """Which notes a round may present.

    ``allowed_notes`` of ``None`` means every note name passes the name check.
    """

    octave_min: int = 4
    octave_max: int = 4
    key_type: KeyType = KeyType.ALL
    allowed_notes: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if not (MIN_OCTAVE <= self.octave_min <= self.octave_max <= MAX_OCTAVE):
            raise ValueError(
                f"octave range must satisfy {MIN_OCTAVE} <= min <= max <= {MAX_OCTAVE}"
            )
        if self.allowed_notes is not None:
            unknown = [n for n in self.allowed_notes if n not in NOTE_NAMES]
            if unknown:
                raise ValueError(f"unknown note names in allowed_notes: {unknown}")

    def permits(self, note: NoteWithOctave) -> bool:
        if note.octave < self.octave_min or note.octave > self.octave_max:
            return False
        if self.key_type is KeyType.WHITE and note.is_black_key:
            return False
        if self.key_type is KeyType.BLACK and not note.is_black_key:
            return False
        if self.allowed_notes is not None and note.note not in self.allowed_notes:
            return False
        return True

    def playable_notes(self) -> list[NoteWithOctave]:
        out: list[NoteWithOctave] = []
        for octave in range(self.octave_min, self.octave_max + 1):
            for name in NOTE_NAMES:
                candidate = NoteWithOctave(name, octave)
                if self.permits(candidate):
                    out.append(candidate)
        return out


DEFAULT_NOTE_FILTER = NoteFilter()


def parse_note(text: str) -> NoteWithOctave:
    """Parse ``"C#4"`` style text into a note."""

    raw = str(text).strip().upper()
    idx = len(raw)
    while idx > 0 and raw[idx - 1].isdigit():
        idx -= 1
    name, octave = raw[:idx], raw[idx:]
    if octave == "":
        raise ValueError(f"missing octave in {text!r}")
    return NoteWithOctave(name, int(octave))


def midi_to_note(midi_number: int) -> NoteWithOctave:
    # C1 = 12, middle C (C5) = 60.
    if not (0 <= int(midi_number) <= 127):
        raise ValueError("MIDI note number must be between 0 and 127")
    octave = int(midi_number) // 12
    if not (MIN_OCTAVE <= octave <= MAX_OCTAVE):
        raise ValueError(f"MIDI note {midi_number} maps to octave {octave}, outside 1-8")
    return NoteWithOctave(NOTE_NAMES[int(midi_number) % 12], octave)


def note_to_midi(note: NoteWithOctave) -> int:
    return note.octave * 12 + NOTE_NAMES.index(note.note)


def is_playable_midi_note(midi_number: int) -> bool:
    return 0 <= midi_number <= 127 and MIN_OCTAVE <= midi_number // 12 <= MAX_OCTAVE


@dataclass(frozen=True, slots=True)
class MidiMessage:
    status: int
    data1: int
    data2: int = 0

    @property
    def is_note_on(self) -> bool:
        return (self.status & MIDI_STATUS_MASK) == MIDI_NOTE_ON and self.data2 > 0

    @property
    def is_note_off(self) -> bool:
        kind = self.status & MIDI_STATUS_MASK
        # Note-on with zero velocity is a note-off by convention.
        return kind == MIDI_NOTE_OFF or (kind == MIDI_NOTE_ON and self.data2 == 0)
