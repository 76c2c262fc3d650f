"""Turn raw note input (MIDI devices, on-screen keys) into guesses.

Sources only produce :class:`MidiMessage` values; the adapter decides when a
message counts as a guess, so the same rules apply to hardware and to the
computer keyboard.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from typing import Any, Protocol

from .music import (
    MIDI_NOTE_OFF,
    MIDI_NOTE_ON,
    MidiMessage,
    NoteWithOctave,
    is_playable_midi_note,
    midi_to_note,
    note_to_midi,
)
from .orchestrator import GameOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_VELOCITY = 100
READ_BATCH = 128


class NoteSource(Protocol):
    def poll(self) -> list[MidiMessage]: ...

    def close(self) -> None: ...


class QueueNoteSource:
    """In-memory source; the pygame shell feeds it from key presses."""

    def __init__(self, messages: Iterable[MidiMessage] = ()) -> None:
        self._queue: deque[MidiMessage] = deque(messages)

    def push(self, message: MidiMessage) -> None:
        self._queue.append(message)

    def press(self, note: NoteWithOctave, *, velocity: int = DEFAULT_VELOCITY) -> None:
        self._queue.append(MidiMessage(MIDI_NOTE_ON, note_to_midi(note), velocity))

    def release(self, note: NoteWithOctave) -> None:
        self._queue.append(MidiMessage(MIDI_NOTE_OFF, note_to_midi(note), 0))

    def poll(self) -> list[MidiMessage]:
        out = list(self._queue)
        self._queue.clear()
        return out

    def close(self) -> None:
        self._queue.clear()


class PygameMidiSource:
    """Reads a hardware MIDI input through ``pygame.midi``."""

    def __init__(self, device_id: int | None = None) -> None:
        import pygame.midi

        pygame.midi.init()
        if device_id is None:
            device_id = pygame.midi.get_default_input_id()
        if device_id is None or device_id < 0:
            pygame.midi.quit()
            raise OSError("no MIDI input device available")
        self._midi = pygame.midi
        self._input: Any = pygame.midi.Input(device_id)
        self._device_id = device_id
        logger.info(f"Opened MIDI input #{device_id}")

    @property
    def device_id(self) -> int:
        return self._device_id

    def poll(self) -> list[MidiMessage]:
        if self._input is None or not self._input.poll():
            return []
        out: list[MidiMessage] = []
        for data, _timestamp in self._input.read(READ_BATCH):
            if not isinstance(data, (list, tuple)) or len(data) < 3:
                logger.warning(f"Malformed MIDI data: {data!r}")
                continue
            out.append(MidiMessage(int(data[0]), int(data[1]), int(data[2])))
        return out

    def close(self) -> None:
        if self._input is None:
            return
        self._input.close()
        self._input = None
        self._midi.quit()
        logger.info(f"Closed MIDI input #{self._device_id}")


class NoteInputAdapter:
    """Feeds note-on messages from a source to the orchestrator as guesses.

    A note counts once per key press: repeated note-ons for a key that is
    still held are ignored until its note-off arrives. Notes outside the
    playable octave range never reach the orchestrator.
    """

    def __init__(self, orchestrator: GameOrchestrator, source: NoteSource) -> None:
        self._orchestrator = orchestrator
        self._source = source
        self._held: set[int] = set()

    @property
    def held_notes(self) -> frozenset[int]:
        return frozenset(self._held)

    def pump(self) -> int:
        """Drain the source; returns how many guesses were submitted."""

        submitted = 0
        for message in self._source.poll():
            if message.is_note_off:
                self._held.discard(message.data1)
                continue
            if not message.is_note_on:
                continue
            number = message.data1
            if number in self._held:
                continue
            self._held.add(number)
            if not is_playable_midi_note(number):
                logger.debug(f"Ignored unplayable MIDI note {number}")
                continue
            if not self._orchestrator.is_awaiting_guess():
                continue
            self._orchestrator.submit_guess(midi_to_note(number))
            submitted += 1
        return submitted

    def close(self) -> None:
        self._held.clear()
        self._source.close()
