"""Chord spelling and the chord filter used by chord training.

Chords are spelled with sharps only, from interval formulas given in
semitones above the root. Extended chords (9ths, 11ths) reach into the next
octave. A chord whose notes would leave octaves 1-8 cannot be built.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .music import MAX_OCTAVE, MIN_OCTAVE, NOTE_NAMES, WHITE_KEYS, NoteWithOctave


class ChordType(StrEnum):
    MAJOR = "major"
    MINOR = "minor"
    DIMINISHED = "diminished"
    AUGMENTED = "augmented"
    MAJOR7 = "major7"
    MINOR7 = "minor7"
    DOMINANT7 = "dominant7"
    DIMINISHED7 = "diminished7"
    HALF_DIMINISHED7 = "half-diminished7"
    MAJOR9 = "major9"
    MINOR9 = "minor9"
    DOMINANT9 = "dominant9"
    MAJOR11 = "major11"
    MINOR11 = "minor11"
    DOMINANT11 = "dominant11"
    SUS2 = "sus2"
    SUS4 = "sus4"
    ADD9 = "add9"
    ADD11 = "add11"


CHORD_FORMULAS: dict[ChordType, tuple[int, ...]] = {
    ChordType.MAJOR: (0, 4, 7),
    ChordType.MINOR: (0, 3, 7),
    ChordType.DIMINISHED: (0, 3, 6),
    ChordType.AUGMENTED: (0, 4, 8),
    ChordType.MAJOR7: (0, 4, 7, 11),
    ChordType.MINOR7: (0, 3, 7, 10),
    ChordType.DOMINANT7: (0, 4, 7, 10),
    ChordType.DIMINISHED7: (0, 3, 6, 9),
    ChordType.HALF_DIMINISHED7: (0, 3, 6, 10),
    ChordType.MAJOR9: (0, 4, 7, 11, 14),
    ChordType.MINOR9: (0, 3, 7, 10, 14),
    ChordType.DOMINANT9: (0, 4, 7, 10, 14),
    ChordType.MAJOR11: (0, 4, 7, 11, 14, 17),
    ChordType.MINOR11: (0, 3, 7, 10, 14, 17),
    ChordType.DOMINANT11: (0, 4, 7, 10, 14, 17),
    ChordType.SUS2: (0, 2, 7),
    ChordType.SUS4: (0, 5, 7),
    ChordType.ADD9: (0, 4, 7, 14),
    ChordType.ADD11: (0, 4, 7, 17),
}

CHORD_SUFFIXES: dict[ChordType, str] = {
    ChordType.MAJOR: "",
    ChordType.MINOR: "m",
    ChordType.DIMINISHED: "dim",
    ChordType.AUGMENTED: "aug",
    ChordType.MAJOR7: "maj7",
    ChordType.MINOR7: "m7",
    ChordType.DOMINANT7: "7",
    ChordType.DIMINISHED7: "dim7",
    ChordType.HALF_DIMINISHED7: "m7b5",
    ChordType.MAJOR9: "maj9",
    ChordType.MINOR9: "m9",
    ChordType.DOMINANT9: "9",
    ChordType.MAJOR11: "maj11",
    ChordType.MINOR11: "m11",
    ChordType.DOMINANT11: "11",
    ChordType.SUS2: "sus2",
    ChordType.SUS4: "sus4",
    ChordType.ADD9: "add9",
    ChordType.ADD11: "add11",
}

TRIADS = (ChordType.MAJOR, ChordType.MINOR, ChordType.DIMINISHED, ChordType.AUGMENTED)
SEVENTH_CHORDS = (
    ChordType.MAJOR7,
    ChordType.MINOR7,
    ChordType.DOMINANT7,
    ChordType.DIMINISHED7,
    ChordType.HALF_DIMINISHED7,
)


@dataclass(frozen=True, slots=True)
class Chord:
    root: str
    chord_type: ChordType
    notes: tuple[NoteWithOctave, ...]
    inversion: int = 0

    @property
    def name(self) -> str:
        base = f"{self.root}{CHORD_SUFFIXES[self.chord_type]}"
        if self.inversion:
            return f"{base}/{self.notes[0].note}"
        return base

    @property
    def pitch_classes(self) -> frozenset[str]:
        return frozenset(n.note for n in self.notes)

    def contains(self, note: NoteWithOctave) -> bool:
        """Octave-agnostic membership."""

        return note.note in self.pitch_classes

    def spelled(self) -> str:
        return ", ".join(n.note for n in self.notes)

    def __str__(self) -> str:
        return self.name


def build_chord(root: str, chord_type: ChordType | str, octave: int, inversion: int = 0) -> Chord:
    """Spell ``chord_type`` on ``root`` with the root in ``octave``.

    Each inversion moves the lowest note up an octave; notes come back
    sorted by pitch.
    """

    if root not in NOTE_NAMES:
        raise ValueError(f"unknown root note {root!r}")
    kind = ChordType(chord_type)
    intervals = CHORD_FORMULAS[kind]
    if not (0 <= inversion < len(intervals)):
        raise ValueError(f"inversion must be in [0, {len(intervals) - 1}] for {kind}")

    base = NOTE_NAMES.index(root)
    pitches = [octave * 12 + base + step for step in intervals]
    for _ in range(inversion):
        pitches.append(pitches.pop(0) + 12)
    pitches.sort()

    notes: list[NoteWithOctave] = []
    for pitch in pitches:
        note_octave = pitch // 12
        if not (MIN_OCTAVE <= note_octave <= MAX_OCTAVE):
            raise ValueError(f"{root}{CHORD_SUFFIXES[kind]} in octave {octave} leaves octaves 1-8")
        notes.append(NoteWithOctave(NOTE_NAMES[pitch % 12], note_octave))
    return Chord(root=root, chord_type=kind, notes=tuple(notes), inversion=inversion)


@dataclass(frozen=True, slots=True)
class ChordFilter:
    """Which chords a chord-training round may deal.

    ``root_notes`` of ``None`` allows all twelve roots.
    """

    chord_types: tuple[ChordType, ...] = (ChordType.MAJOR, ChordType.MINOR)
    root_notes: tuple[str, ...] | None = None
    octaves: tuple[int, ...] = (4,)
    include_inversions: bool = False

    def __post_init__(self) -> None:
        if not self.chord_types:
            raise ValueError("chord_types must not be empty")
        object.__setattr__(self, "chord_types", tuple(ChordType(t) for t in self.chord_types))
        if self.root_notes is not None:
            unknown = [n for n in self.root_notes if n not in NOTE_NAMES]
            if unknown:
                raise ValueError(f"unknown note names in root_notes: {unknown}")
            object.__setattr__(self, "root_notes", tuple(self.root_notes))
        if not self.octaves:
            raise ValueError("octaves must not be empty")
        if any(not (MIN_OCTAVE <= o <= MAX_OCTAVE) for o in self.octaves):
            raise ValueError(f"octaves must be in [{MIN_OCTAVE}, {MAX_OCTAVE}]")
        object.__setattr__(self, "octaves", tuple(int(o) for o in self.octaves))

    def candidates(self) -> list[Chord]:
        roots = NOTE_NAMES if self.root_notes is None else self.root_notes
        out: list[Chord] = []
        for octave in self.octaves:
            for root in roots:
                for kind in self.chord_types:
                    inversions = len(CHORD_FORMULAS[kind]) if self.include_inversions else 1
                    for inversion in range(inversions):
                        try:
                            out.append(build_chord(root, kind, octave, inversion))
                        except ValueError:
                            continue
        return out

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ChordFilter:
        if not isinstance(raw, Mapping):
            raise ValueError(f"chord filter expects a mapping, got {type(raw).__name__}")
        kwargs: dict[str, Any] = {}
        for key in ("chord_types", "root_notes", "octaves"):
            value = raw.get(key)
            if value is None:
                continue
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise ValueError(f"chord filter {key} must be a list")
            kwargs[key] = tuple(value)
        if "include_inversions" in raw:
            kwargs["include_inversions"] = bool(raw["include_inversions"])
        return cls(**kwargs)

    def as_dict(self) -> dict[str, Any]:
        return {
            "chord_types": [str(t) for t in self.chord_types],
            "root_notes": None if self.root_notes is None else list(self.root_notes),
            "octaves": list(self.octaves),
            "include_inversions": self.include_inversions,
        }


DEFAULT_CHORD_FILTER = ChordFilter()

CHORD_FILTER_PRESETS: dict[str, ChordFilter] = {
    "basic-triads": ChordFilter(root_notes=WHITE_KEYS),
    "major-minor-triads": ChordFilter(octaves=(3, 4)),
    "all-triads": ChordFilter(chord_types=TRIADS, octaves=(3, 4)),
    "seventh-chords": ChordFilter(chord_types=SEVENTH_CHORDS, octaves=(3, 4)),
}
