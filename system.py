"""
CHIP-8 System Emulator
=======================
Wires together:
  - the CHIP-8 CPU (chip8.py)
  - the display, timers and keypad (devices.py)
  - the loaded program image

The host owns one Chip8System and drives it by calling tick() at its own
cadence (typically several hundred times a second).  Each tick runs one
instruction, checks the 60 Hz timer cadence, and reports whether the
screen needs redrawing and whether a beep pulse is due.
"""

from __future__ import annotations
import logging
import random
import time
from typing import Callable, Optional

from chip8 import Chip8, MAX_PROGRAM, PROGRAM_BASE
from devices import Display, Keypad, Timers
from errors import LoadError
from opcodes import format_instruction

logger = logging.getLogger(__name__)


class Chip8System:
    """A CHIP-8 machine with a program loaded and ready to tick."""

    def __init__(self, program: bytes | bytearray,
                 modern_quirks: bool = False,
                 index_overflow_flag: bool = False,
                 clock: Callable[[], float] = time.monotonic,
                 rng: Optional[random.Random] = None,
                 trace: bool = False):
        if len(program) > MAX_PROGRAM:
            raise LoadError(len(program), MAX_PROGRAM)
        self.program = bytes(program)
        self.trace = trace

        self.display = Display()
        self.timers = Timers(clock)
        self.keypad = Keypad()
        self.devices = [self.display, self.timers, self.keypad]

        self.cpu = Chip8(self.display, self.timers, self.keypad,
                         modern_quirks=modern_quirks,
                         index_overflow_flag=index_overflow_flag,
                         rng=rng)
        self.cpu.load_bytes(PROGRAM_BASE, self.program)
        logger.debug("Loaded %d-byte program at %#x (%s quirks)",
                     len(self.program), PROGRAM_BASE,
                     "modern" if modern_quirks else "legacy")

    @classmethod
    def from_file(cls, path: str, **kwargs) -> "Chip8System":
        """Read a ROM image from disk and build a system around it."""
        with open(path, "rb") as f:
            data = f.read()
        return cls(data, **kwargs)

    @property
    def modern_quirks(self) -> bool:
        return self.cpu.modern_quirks

    # -- Execution --

    def tick(self) -> tuple[bool, bool]:
        """One fetch/decode/execute cycle plus the timer cadence check.

        Returns (redraw_needed, beep_needed).  Interpreter errors
        (DecodeError, StackOverflowError, StackUnderflowError) propagate
        with the machine left at the faulting instruction.
        """
        pc = self.cpu.pc
        ins = self.cpu.step()
        if self.trace:
            logger.debug("%03x: %04x  %s", pc, ins.word, format_instruction(ins))
        beep = False
        for dev in self.devices:
            if dev.tick():
                beep = True
        return self.display.dirty, beep

    def run_batch(self, count: int) -> tuple[bool, bool]:
        """Tick up to *count* times; signals are OR-ed across the batch."""
        redraw = beep = False
        for _ in range(count):
            r, b = self.tick()
            redraw |= r
            beep |= b
        return redraw, beep

    # -- Input --

    def press(self, key: int):
        self.keypad.press(key)

    def release(self, key: Optional[int] = None):
        self.keypad.release(key)

    # -- Output --

    def render(self, frame, foreground: bytes = b"\xff\xff\xff\xff",
               background: bytes = b"\x00\x00\x00\xff"):
        """Export the display into *frame* and clear the dirty flag."""
        self.display.render(frame, foreground, background)

    # -- Lifecycle --

    def reset(self):
        """Power-cycle: clear all state and reload the original program."""
        for dev in self.devices:
            dev.reset()
        self.cpu.reset()
        self.cpu.load_bytes(PROGRAM_BASE, self.program)
        logger.debug("System reset")
