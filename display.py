"""
CHIP-8 pygame Frontend
=======================
Hosts a Chip8System in a pygame window: feeds key events into the input
latch, drives tick() at a fixed instruction rate, exports the display
into an RGB frame when it is dirty, and plays a short square-wave pulse
whenever the sound timer asks for a beep.

pygame and numpy are imported lazily, so this module (and its key
tables) can be imported on machines without a display.

Usage (programmatic):
    from display import Chip8Display
    Chip8Display(system, scale=10, speed=700).run()   # blocks until closed

Usage (CLI):
    python cli.py pong.ch8 --scale 12 --layout qwerty
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from errors import Chip8Error

if TYPE_CHECKING:
    from system import Chip8System

logger = logging.getLogger(__name__)

FOREGROUND = b"\xe8\xe8\xe8"   # RGB
BACKGROUND = b"\x10\x10\x18"

DEFAULT_FPS   = 60
DEFAULT_SPEED = 700   # instructions per second
BEEP_HZ       = 440
BEEP_SECONDS  = 1 / 60
BEEP_VOLUME   = 6000

# Physical key name (as understood by pygame.key.key_code) → logical key.
# The logical keypad is laid out as
#     1 2 3 C
#     4 5 6 D
#     7 8 9 E
#     A 0 B F
KEY_LAYOUTS: dict[str, dict[str, int]] = {
    "azerty": {
        "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
        "a": 0x4, "z": 0x5, "e": 0x6, "r": 0xD,
        "q": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
        "w": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
    },
    "qwerty": {
        "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
        "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
        "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
        "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
    },
}


def square_wave(rate: int, channels: int = 1, freq: int = BEEP_HZ,
                seconds: float = BEEP_SECONDS,
                volume: int = BEEP_VOLUME) -> bytes:
    """Signed 16-bit PCM square wave, interleaved for *channels*."""
    import numpy as np

    count = max(1, int(rate * seconds))
    half = max(1, rate // (2 * freq))
    phase = (np.arange(count) // half) % 2
    wave = np.where(phase == 0, volume, -volume).astype(np.int16)
    return np.repeat(wave, channels).tobytes()


class Chip8Display:
    """pygame window driving a Chip8System."""

    def __init__(self, system: "Chip8System", scale: int = 10,
                 speed: int = DEFAULT_SPEED, layout: str = "azerty",
                 mute: bool = False, title: str = "CHIP-8"):
        if layout not in KEY_LAYOUTS:
            raise ValueError(f"Unknown key layout: {layout!r}")
        self.sys = system
        self.scale = max(1, scale)
        self.speed = max(1, speed)
        self.layout = layout
        self.mute = mute
        self.title = title
        self.fps = DEFAULT_FPS
        self.error: Chip8Error | None = None
        self._stop_event = threading.Event()

    @property
    def steps_per_frame(self) -> int:
        return max(1, self.speed // self.fps)

    def stop(self):
        """Ask the window loop to exit after the current frame."""
        self._stop_event.set()

    # -- internals --------------------------------------------------------

    def _open_beeper(self, pygame):
        if self.mute:
            return None
        try:
            pygame.mixer.init(frequency=44100, size=-16, channels=1)
            rate, _size, channels = pygame.mixer.get_init()
            return pygame.mixer.Sound(buffer=square_wave(rate, channels))
        except pygame.error as e:
            logger.warning("Audio unavailable, running muted: %s", e)
            return None

    def _paint(self, pygame, surface, frame: bytearray):
        """Export the display into *frame* and copy it onto *surface*."""
        import numpy as np

        disp = self.sys.display
        self.sys.render(frame, FOREGROUND, BACKGROUND)
        rgb = np.frombuffer(frame, dtype=np.uint8).reshape(
            disp.height, disp.width, 3)
        # surfarray wants (width, height, 3)
        pygame.surfarray.blit_array(surface, rgb.swapaxes(0, 1))

    def run(self):
        """Main window loop.  Returns when the window is closed."""
        import pygame

        disp = self.sys.display
        w, h = disp.width, disp.height
        pygame.init()
        pygame.display.set_caption(self.title)
        screen = pygame.display.set_mode((w * self.scale, h * self.scale))
        surface = pygame.Surface((w, h))
        clock = pygame.time.Clock()
        beeper = self._open_beeper(pygame)
        keymap = {pygame.key.key_code(name): key
                  for name, key in KEY_LAYOUTS[self.layout].items()}
        frame = bytearray(w * h * len(FOREGROUND))
        disp.dirty = True

        self._stop_event.clear()
        try:
            while not self._stop_event.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._stop_event.set()
                    elif event.type == pygame.KEYDOWN:
                        if event.key == pygame.K_ESCAPE:
                            self._stop_event.set()
                        elif event.key in keymap:
                            self.sys.press(keymap[event.key])
                    elif event.type == pygame.KEYUP and event.key in keymap:
                        self.sys.release(keymap[event.key])

                if self.error is None:
                    try:
                        _redraw, beep = self.sys.run_batch(self.steps_per_frame)
                    except Chip8Error as e:
                        self.error = e
                        logger.warning("Execution stopped: %s", e)
                        pygame.display.set_caption(f"{self.title} [stopped: {e}]")
                    else:
                        if beep and beeper is not None:
                            beeper.play()

                if disp.dirty:
                    self._paint(pygame, surface, frame)
                    screen.blit(pygame.transform.scale(surface, screen.get_size()), (0, 0))
                    pygame.display.flip()

                clock.tick(self.fps)
        finally:
            pygame.quit()
