"""
CHIP-8 Peripheral / Device Layer
=================================
The pieces of the machine that sit beside the CPU:

  Timers   — delay and sound counters, decremented at 60 Hz wall-clock
  Display  — 64x32 one-bit framebuffer with a dirty flag
  Keypad   — input latch holding at most one logical key (0x0–0xF)

The CPU (chip8.py) mutates these directly; system.py owns them and
drives the timer cadence once per tick.
"""

from __future__ import annotations
import time
from typing import Callable, Optional

SCREEN_WIDTH  = 64
SCREEN_HEIGHT = 32

TIMER_HZ     = 60
TIMER_PERIOD = 1.0 / TIMER_HZ

NUM_KEYS = 16


# ---------------------------------------------------------------------------
#  Device base class
# ---------------------------------------------------------------------------

class Device:
    """Abstract peripheral."""

    def __init__(self, name: str):
        self.name = name

    def tick(self) -> bool:
        """Advance the device by one host tick. Override for timers etc.

        Returns True when the device wants the host to emit a beep pulse.
        """
        return False

    def reset(self):
        """Return the device to its power-on state."""
        pass


# ---------------------------------------------------------------------------
#  Timers
# ---------------------------------------------------------------------------
# Two 8-bit counters.  Every time at least TIMER_PERIOD seconds of wall
# time have passed since the last decrement, each non-zero counter drops
# by exactly one and the reference time restarts at "now".  A host that
# ticks slower than 60 Hz therefore sees at most one decrement per tick.

class Timers(Device):
    """Delay + sound timers on a wall-clock cadence."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__("Timers")
        self._clock = clock
        self.delay: int = 0
        self.sound: int = 0
        self._last: float = clock()

    @property
    def sounding(self) -> bool:
        return self.sound > 0

    def tick(self) -> bool:
        """Decrement if a period has elapsed.

        Returns True when a decrement happened while the sound timer was
        running, i.e. the host should emit one beep pulse.
        """
        now = self._clock()
        if now - self._last < TIMER_PERIOD:
            return False
        self._last = now
        beep = self.sound > 0
        if self.delay > 0:
            self.delay -= 1
        if self.sound > 0:
            self.sound -= 1
        return beep

    def reset(self):
        self.delay = 0
        self.sound = 0
        self._last = self._clock()


# ---------------------------------------------------------------------------
#  Display
# ---------------------------------------------------------------------------
# One byte per pixel, 0 or 1, row-major.  `dirty` is raised by every
# clear or draw and lowered only by render().

class Display(Device):
    """Monochrome framebuffer."""

    def __init__(self, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT):
        super().__init__("Display")
        self.width = width
        self.height = height
        self.buffer = bytearray(width * height)
        self.dirty: bool = False

    def clear(self):
        self.buffer[:] = bytes(len(self.buffer))
        self.dirty = True

    def get(self, col: int, row: int) -> int:
        return self.buffer[row * self.width + col]

    def toggle(self, col: int, row: int) -> bool:
        """XOR one pixel with 1.  Returns True if the pixel was turned off."""
        idx = row * self.width + col
        was_set = self.buffer[idx] == 1
        self.buffer[idx] ^= 1
        return was_set

    def pixels(self) -> list[list[int]]:
        """Rows of 0/1 values, top to bottom."""
        w = self.width
        return [list(self.buffer[r * w:(r + 1) * w]) for r in range(self.height)]

    def to_text(self, on: str = "#", off: str = ".") -> str:
        return "\n".join("".join(on if p else off for p in row)
                         for row in self.pixels())

    def render(self, frame, foreground: bytes = b"\xff\xff\xff\xff",
               background: bytes = b"\x00\x00\x00\xff"):
        """Export the buffer into a caller-supplied pixel buffer.

        *frame* is any writable buffer of width*height*len(color) bytes;
        each pixel becomes *foreground* (1) or *background* (0).  Clears
        the dirty flag.
        """
        size = len(foreground)
        if len(background) != size:
            raise ValueError("foreground and background must be the same size")
        view = memoryview(frame).cast("B")
        if len(view) != len(self.buffer) * size:
            raise ValueError(
                f"frame must be {len(self.buffer) * size} bytes, got {len(view)}")
        for i, px in enumerate(self.buffer):
            view[i * size:(i + 1) * size] = foreground if px else background
        self.dirty = False

    def reset(self):
        self.buffer[:] = bytes(len(self.buffer))
        self.dirty = True


# ---------------------------------------------------------------------------
#  Keypad — input latch
# ---------------------------------------------------------------------------

class Keypad(Device):
    """Holds the one logical key currently pressed, if any."""

    def __init__(self):
        super().__init__("Keypad")
        self.key: Optional[int] = None

    def press(self, key: int):
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Logical key out of range: {key!r}")
        self.key = key

    def release(self, key: Optional[int] = None):
        """Clear the latch.  With *key*, only if that key is the one held."""
        if key is None or key == self.key:
            self.key = None

    def is_pressed(self, key: int) -> bool:
        return self.key is not None and self.key == key

    def reset(self):
        self.key = None
