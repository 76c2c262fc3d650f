"""Pygame UI shell for the ear trainer.

The root menu lists the registered practice modes; picking one opens a
practice screen that drives a :class:`GameOrchestrator` from the frame loop.
Notes are entered with the computer keyboard (A W S E D F T G Y H U J map to
C through B) or with a MIDI keyboard when ``EAR_TRAINER_MIDI_INPUT`` is set.

Deterministic timing/scoring/RNG/state lives in ear_trainer/* (core modules).
"""

from __future__ import annotations

import logging
import math
import sqlite3
from array import array
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import pygame

from . import __version__
from .clock import RealClock
from .events import EventName, GuessResult, RoundStart, SessionComplete, SessionState, StateChange, TimerTick
from .mode_core import format_clock
from .music import DEFAULT_NOTE_FILTER, NoteDuration, NoteWithOctave
from .note_input import NoteInputAdapter, NoteSource, PygameMidiSource, QueueNoteSource
from .orchestrator import GameOrchestrator
from .persistence import record_session
from .registry import ModeDescriptor, default_registry
from .settings import AppConfig
from .survival import SurvivalMode

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

KEY_NOTES: dict[int, str] = {
    pygame.K_a: "C",
    pygame.K_w: "C#",
    pygame.K_s: "D",
    pygame.K_e: "D#",
    pygame.K_d: "E",
    pygame.K_f: "F",
    pygame.K_t: "F#",
    pygame.K_g: "G",
    pygame.K_y: "G#",
    pygame.K_h: "A",
    pygame.K_u: "A#",
    pygame.K_j: "B",
}

# Seconds per note value at 120 bpm.
NOTE_SECONDS: dict[NoteDuration, float] = {
    NoteDuration.EIGHTH: 0.25,
    NoteDuration.QUARTER: 0.5,
    NoteDuration.HALF: 1.0,
    NoteDuration.WHOLE: 2.0,
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...

    def update(self) -> None: ...

    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the root screen; it handles quitting itself.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(
        self,
        app: App,
        title: str,
        items: list[MenuItem],
        *,
        is_root: bool = False,
        selected: int = 0,
    ) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = selected if 0 <= selected < len(items) else 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    @property
    def selected(self) -> int:
        return self._selected

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if self._items:
            self._selected = (self._selected + delta) % len(self._items)

    def update(self) -> None:
        return

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill((3, 9, 78))
        title = self._title_font.render(self._title, True, (238, 245, 255))
        surface.blit(title, title.get_rect(center=(w // 2, max(40, h // 8))))

        row_h = 44
        y = max(90, h // 4)
        for idx, item in enumerate(self._items):
            row = pygame.Rect(w // 4, y, w // 2, row_h - 6)
            selected = idx == self._selected
            pygame.draw.rect(surface, (244, 248, 255) if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (120, 142, 196) if selected else (62, 84, 152), row, 2 if selected else 1)
            color = (14, 26, 74) if selected else (238, 245, 255)
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, (row.x + 12, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        foot = self._hint_font.render("Enter/Space: Select  |  Esc: Back", True, (186, 200, 224))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class _TonePlayer:
    """Sine tones (or a mixed chord) for the stimulus; silent when no audio device is usable."""

    def __init__(self, *, sample_rate: int = 22050) -> None:
        self._sample_rate = int(sample_rate)
        self._amp = 32767
        self._cache: dict[tuple[tuple[int, ...], float], pygame.mixer.Sound] = {}
        self._channel: pygame.mixer.Channel | None = None
        self._channels = 1
        self._available = False
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            # pygame.init() may already have opened the mixer with its own format.
            frequency, _size, channels = pygame.mixer.get_init()
            self._sample_rate = int(frequency)
            self._channels = max(1, int(channels))
            self._channel = pygame.mixer.Channel(0)
            self._available = True
        except pygame.error as exc:
            logger.warning(f"Audio unavailable, stimulus will not be played: {exc}")

    @property
    def available(self) -> bool:
        return self._available

    def play(self, notes: Sequence[NoteWithOctave], duration: NoteDuration) -> None:
        if not self._available or not notes:
            return
        assert self._channel is not None
        key = (tuple(n.midi_number for n in notes), NOTE_SECONDS[duration])
        sound = self._cache.get(key)
        if sound is None:
            frequencies = [self._frequency(m) for m in key[0]]
            pcm = self._render_tone_pcm(frequencies, key[1], gain=0.35)
            sound = pygame.mixer.Sound(buffer=pcm.tobytes())
            self._cache[key] = sound
        self._channel.play(sound)

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()

    @staticmethod
    def _frequency(midi_number: int) -> float:
        return 440.0 * (2.0 ** ((midi_number - 69) / 12.0))

    def _render_tone_pcm(self, frequencies_hz: Sequence[float], duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.02))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / fade_n
            elif idx > sample_count - fade_n:
                envelope = max(0.0, (sample_count - idx) / fade_n)
            t = idx / self._sample_rate
            mixed = sum(math.sin(2.0 * math.pi * f * t) for f in frequencies_hz) / len(frequencies_hz)
            sample = mixed * gain * envelope
            value = int(max(-1.0, min(1.0, sample)) * self._amp)
            for _ in range(self._channels):
                out.append(value)
        return out


class PracticeScreen:
    def __init__(
        self,
        app: App,
        *,
        descriptor: ModeDescriptor,
        config: AppConfig,
        clock: RealClock,
        tones: _TonePlayer,
        midi_source: NoteSource | None = None,
    ) -> None:
        self._app = app
        self._descriptor = descriptor
        self._config = config
        self._tones = tones
        self._small_font = pygame.font.Font(None, 26)
        self._big_font = pygame.font.Font(None, 96)
        self._mid_font = pygame.font.Font(None, 40)

        self._orchestrator = GameOrchestrator(clock=clock, seed=config.seed)
        self._keys = QueueNoteSource()
        self._inputs = [NoteInputAdapter(self._orchestrator, self._keys)]
        if midi_source is not None:
            self._inputs.append(NoteInputAdapter(self._orchestrator, midi_source))

        self._feedback = "Press Space to start"
        self._revealed: str | None = None
        self._last_correct: bool | None = None
        self._tick: TimerTick | None = None

        self._orchestrator.apply_settings(
            descriptor.id,
            None,
            DEFAULT_NOTE_FILTER,
            NoteDuration.HALF,
            10.0,
            1500,
        )
        self._subscribe()

    @property
    def orchestrator(self) -> GameOrchestrator:
        return self._orchestrator

    @property
    def feedback(self) -> str:
        return self._feedback

    def _subscribe(self) -> None:
        o = self._orchestrator
        o.on(EventName.ROUND_START, self._on_round_start)
        o.on(EventName.GUESS_RESULT, self._on_guess_result)
        o.on(EventName.STATE_CHANGE, self._on_state_change)
        o.on(EventName.TIMER_TICK, self._on_timer_tick)
        o.on(EventName.SESSION_COMPLETE, self._on_session_complete)

    def _on_round_start(self, event: RoundStart) -> None:
        self._revealed = None
        self._last_correct = None
        self._feedback = event.feedback
        self._tones.play(event.context.sounding_notes(), event.note_duration)

    def _on_guess_result(self, event: GuessResult) -> None:
        self._feedback = event.feedback
        self._last_correct = event.is_correct

    def _on_state_change(self, event: StateChange) -> None:
        if event.revealed is not None:
            context = self._orchestrator.context
            chord = None if context is None else context.chord
            self._revealed = chord.name if chord is not None else str(event.revealed)

    def _on_timer_tick(self, event: TimerTick) -> None:
        self._tick = event

    def _on_session_complete(self, event: SessionComplete) -> None:
        report = event.report
        self._feedback = (
            f"Session complete: {report.stats.correct_attempts}/{report.stats.total_attempts} correct "
            f"({report.stats.accuracy:.0f}%). Press Space to play again"
        )
        self._tones.stop()
        if self._config.db_path is None:
            return
        try:
            record_session(db_path=self._config.db_path, report=report, app_version=__version__)
        except sqlite3.Error:
            logger.exception(f"Could not record session to {self._config.db_path}")

    def _start_or_next(self) -> None:
        o = self._orchestrator
        state = o.session_state
        if state is SessionState.COMPLETED:
            o.stop()
            self._reset_view()
            state = o.session_state
        if state is SessionState.IDLE:
            o.start()
            o.begin_new_round()
        elif state is SessionState.PAUSED:
            o.resume()

    def _reset_view(self) -> None:
        self._tick = None
        self._revealed = None
        self._last_correct = None

    def _toggle_pause(self) -> None:
        o = self._orchestrator
        if o.session_state is SessionState.PLAYING:
            o.pause()
            self._tones.stop()
        elif o.session_state is SessionState.PAUSED:
            o.resume()

    def _replay(self) -> None:
        context = self._orchestrator.context
        if context is not None and self._orchestrator.is_awaiting_guess():
            self._tones.play(context.sounding_notes(), self._orchestrator.timing.note_duration)

    def _key_note(self, key: int) -> NoteWithOctave | None:
        name = KEY_NOTES.get(key)
        if name is None:
            return None
        note_filter = self._orchestrator.note_filter or DEFAULT_NOTE_FILTER
        return NoteWithOctave(name, note_filter.octave_min)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
                self.close()
                self._app.pop()
            elif event.key in (pygame.K_SPACE, pygame.K_RETURN, pygame.K_KP_ENTER):
                self._start_or_next()
            elif event.key == pygame.K_p:
                self._toggle_pause()
            elif event.key == pygame.K_r:
                self._replay()
            else:
                note = self._key_note(event.key)
                if note is not None:
                    self._keys.press(note)
        elif event.type == pygame.KEYUP:
            note = self._key_note(event.key)
            if note is not None:
                self._keys.release(note)

    def update(self) -> None:
        for adapter in self._inputs:
            adapter.pump()
        self._orchestrator.update()

    def close(self) -> None:
        self._orchestrator.stop()
        self._tones.stop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        o = self._orchestrator
        surface.fill((10, 10, 14))
        text_main = (235, 235, 245)
        text_muted = (170, 170, 185)

        title = self._mid_font.render(self._descriptor.title, True, text_main)
        surface.blit(title, (24, 18))
        state = self._small_font.render(f"{o.session_state}  {o.round_state or ''}", True, text_muted)
        surface.blit(state, (24, 60))

        timer_text = self._timer_text()
        if timer_text:
            timer = self._mid_font.render(timer_text, True, text_main)
            surface.blit(timer, timer.get_rect(topright=(w - 24, 18)))

        mode = o.mode_state
        if isinstance(mode, SurvivalMode):
            bar = pygame.Rect(24, 92, w - 48, 14)
            pygame.draw.rect(surface, (60, 20, 20), bar)
            fill = bar.copy()
            fill.w = int(bar.w * mode.health / mode.max_health)
            pygame.draw.rect(surface, (200, 60, 60), fill)

        if self._revealed is not None:
            centre, color = self._revealed, (240, 200, 90)
        elif self._last_correct is True:
            centre, color = "Correct", (110, 220, 130)
        elif self._last_correct is False:
            centre, color = "Wrong", (230, 100, 100)
        else:
            centre, color = "?", text_main
        big = self._big_font.render(centre, True, color)
        surface.blit(big, big.get_rect(center=(w // 2, h // 2 - 20)))

        feedback = self._small_font.render(self._feedback, True, text_main)
        surface.blit(feedback, feedback.get_rect(center=(w // 2, h // 2 + 60)))

        hint = "A W S E D F T G Y H U J: notes  |  Space: start  |  P: pause  |  R: replay  |  Esc: back"
        foot = self._small_font.render(hint, True, text_muted)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))

    def _timer_text(self) -> str:
        tick = self._tick
        if tick is None:
            return ""
        if tick.session_remaining_s is not None:
            return format_clock(tick.session_remaining_s)
        return format_clock(tick.session_elapsed_s)


def _open_midi_source(config: AppConfig) -> NoteSource | None:
    if config.midi_input_id is None:
        return None
    try:
        return PygameMidiSource(config.midi_input_id)
    except Exception:
        logger.exception(f"Could not open MIDI input #{config.midi_input_id}; using the computer keyboard")
        return None


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: AppConfig | None = None,
) -> int:
    config = config or AppConfig()
    pygame.init()
    pygame.display.set_caption("Ear Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)
    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()
    tones = _TonePlayer()
    midi_source = _open_midi_source(config)
    registry = default_registry()

    def open_mode(descriptor: ModeDescriptor) -> Callable[[], None]:
        def _open() -> None:
            logger.info(f"Opening {descriptor.title}")
            app.push(
                PracticeScreen(
                    app,
                    descriptor=descriptor,
                    config=config,
                    clock=real_clock,
                    tones=tones,
                    midi_source=midi_source,
                )
            )

        return _open

    descriptors = registry.get_all()
    items = [MenuItem(d.title, open_mode(d)) for d in descriptors]
    items.append(MenuItem("Quit", app.quit))
    selected = next((i for i, d in enumerate(descriptors) if d.id == config.mode_id), 0)
    app.push(MenuScreen(app, "Ear Trainer", items, is_root=True, selected=selected))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        if midi_source is not None:
            midi_source.close()
        pygame.quit()

    return 0
