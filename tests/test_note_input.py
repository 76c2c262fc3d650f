from __future__ import annotations

from dataclasses import dataclass

from ear_trainer.music import MidiMessage, NoteFilter, NoteWithOctave, note_to_midi
from ear_trainer.note_input import NoteInputAdapter, QueueNoteSource
from ear_trainer.orchestrator import GameOrchestrator


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _playing() -> GameOrchestrator:
    orch = GameOrchestrator(clock=FakeClock(), seed=12)
    orch.apply_settings("sandbox", None, NoteFilter(), "2n", None, 1500)
    orch.start()
    orch.begin_new_round()
    return orch


def test_note_on_submits_a_guess_in_any_octave() -> None:
    orch = _playing()
    source = QueueNoteSource()
    adapter = NoteInputAdapter(orch, source)
    ctx = orch.context
    assert ctx is not None

    source.press(NoteWithOctave(ctx.stimulus.note, 2))
    assert adapter.pump() == 1
    assert orch.context is not None and orch.context.round_index == 1
    assert note_to_midi(NoteWithOctave(ctx.stimulus.note, 2)) in adapter.held_notes


def test_held_key_counts_once_until_released() -> None:
    orch = _playing()
    source = QueueNoteSource()
    adapter = NoteInputAdapter(orch, source)
    note = NoteWithOctave("C", 4)

    source.press(note)
    source.press(note)
    assert adapter.pump() == 1

    # Zero-velocity note-on releases the key.
    source.push(MidiMessage(0x90, note_to_midi(note), 0))
    source.press(note)
    assert adapter.pump() == 1
    source.release(note)
    adapter.pump()
    assert adapter.held_notes == frozenset()


def test_unplayable_notes_and_other_messages_are_ignored() -> None:
    orch = _playing()
    source = QueueNoteSource(
        [
            MidiMessage(0x90, 5, 100),
            MidiMessage(0x90, 120, 100),
            MidiMessage(0xB0, 64, 127),
        ]
    )
    adapter = NoteInputAdapter(orch, source)
    assert adapter.pump() == 0
    mode = orch.mode_state
    assert mode is not None and mode.total_attempts == 0


def test_notes_are_dropped_while_no_round_is_waiting() -> None:
    orch = _playing()
    source = QueueNoteSource()
    adapter = NoteInputAdapter(orch, source)
    orch.pause()

    source.press(NoteWithOctave("E", 4))
    assert adapter.pump() == 0

    adapter.close()
    assert source.poll() == []
