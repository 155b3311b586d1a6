"""
CHIP-8 Interpreter Core
========================
Fetch/decode/execute for the CHIP-8 instruction set: memory, the V0–VF
register file, the index register I, the program counter and the call
stack.  Display, timers and keypad live in devices.py and are handed in
by the system (system.py).

Every instruction is applied atomically.  When an instruction fails
(unknown word, stack overflow or underflow) the PC is put back on the
faulting instruction before the error propagates, so the machine state
is exactly what it was before the fetch.

Quirk modes:
  legacy (default)  COSMAC VIP behaviour
  modern            SUPER-CHIP behaviour for 8XY6/8XYE, FX55/FX65, BNNN
"""

from __future__ import annotations
import random
from typing import Optional

from devices import Display, Keypad, Timers
from errors import (Chip8Error, DecodeError, StackOverflowError,
                    StackUnderflowError)
from opcodes import Instruction, Op, decode, format_instruction

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEMORY_SIZE   = 0x1000
ADDR_MASK     = 0x0FFF
PROGRAM_BASE  = 0x200
MAX_PROGRAM   = MEMORY_SIZE - PROGRAM_BASE
FONT_BASE     = 0x050
GLYPH_HEIGHT  = 5
STACK_DEPTH   = 16
NUM_REGS      = 16
VF            = 0xF

FONT_SET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# ---------------------------------------------------------------------------
#  CPU
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 CPU bound to its display, timers and keypad."""

    def __init__(self, display: Display, timers: Timers, keypad: Keypad,
                 modern_quirks: bool = False, index_overflow_flag: bool = False,
                 rng: Optional[random.Random] = None):
        self.display = display
        self.timers = timers
        self.keypad = keypad
        self.modern_quirks = modern_quirks
        self.index_overflow_flag = index_overflow_flag
        self.rng = rng if rng is not None else random.Random()

        self.mem = bytearray(MEMORY_SIZE)
        self.v: list[int] = [0] * NUM_REGS
        self.i: int = 0
        self.pc: int = PROGRAM_BASE
        self.stack: list[int] = []
        self.cycle_count: int = 0
        self.waiting_for_key: bool = False

        self.mem[FONT_BASE:FONT_BASE + len(FONT_SET)] = FONT_SET

    # -- Memory access --

    def mem_read8(self, addr: int) -> int:
        return self.mem[addr & ADDR_MASK]

    def mem_write8(self, addr: int, val: int):
        self.mem[addr & ADDR_MASK] = val & 0xFF

    def load_bytes(self, addr: int, data: bytes | bytearray):
        """Write raw bytes into memory at the given address."""
        for off, b in enumerate(data):
            self.mem[(addr + off) & ADDR_MASK] = b

    # -- Fetch --

    def fetch(self) -> int:
        """Read the big-endian word at PC and advance PC by 2."""
        word = (self.mem_read8(self.pc) << 8) | self.mem_read8(self.pc + 1)
        self.pc = (self.pc + 2) & ADDR_MASK
        return word

    # =====================================================================
    #  STEP — one fetch/decode/execute cycle
    # =====================================================================

    def step(self) -> Instruction:
        """Execute one instruction and return it."""
        addr = self.pc
        word = self.fetch()
        try:
            ins = decode(word, self.modern_quirks)
            self.execute(ins)
        except Chip8Error:
            self.pc = addr
            raise
        self.cycle_count += 1
        return ins

    def peek(self) -> Instruction:
        """Decode the instruction at PC without executing it."""
        word = (self.mem_read8(self.pc) << 8) | self.mem_read8(self.pc + 1)
        return decode(word, self.modern_quirks)

    def _skip(self, cond: bool):
        if cond:
            self.pc = (self.pc + 2) & ADDR_MASK

    def execute(self, ins: Instruction):
        """Apply one decoded instruction.  PC already points past it."""
        op, x, y = ins.op, ins.x, ins.y
        v = self.v

        # -- Flow control --
        if op is Op.SYS:
            pass
        elif op is Op.CLS:
            self.display.clear()
        elif op is Op.RET:
            if not self.stack:
                raise StackUnderflowError((self.pc - 2) & ADDR_MASK)
            self.pc = self.stack.pop()
        elif op is Op.JP:
            self.pc = ins.nnn
        elif op is Op.CALL:
            if len(self.stack) >= STACK_DEPTH:
                raise StackOverflowError((self.pc - 2) & ADDR_MASK, STACK_DEPTH)
            self.stack.append(self.pc)
            self.pc = ins.nnn
        elif op is Op.JP_V0:
            self.pc = (ins.nnn + v[0]) & ADDR_MASK
        elif op is Op.JP_VX:
            self.pc = (ins.nnn + v[x]) & ADDR_MASK

        # -- Conditional skips --
        elif op is Op.SE_VX_NN:
            self._skip(v[x] == ins.nn)
        elif op is Op.SNE_VX_NN:
            self._skip(v[x] != ins.nn)
        elif op is Op.SE_VX_VY:
            self._skip(v[x] == v[y])
        elif op is Op.SNE_VX_VY:
            self._skip(v[x] != v[y])
        elif op is Op.SKP:
            self._skip(self.keypad.is_pressed(v[x]))
        elif op is Op.SKNP:
            self._skip(not self.keypad.is_pressed(v[x]))

        # -- Loads and arithmetic --
        elif op is Op.LD_VX_NN:
            v[x] = ins.nn
        elif op is Op.ADD_VX_NN:
            v[x] = (v[x] + ins.nn) & 0xFF
        elif op is Op.LD_VX_VY:
            v[x] = v[y]
        elif op is Op.OR:
            v[x] |= v[y]
        elif op is Op.AND:
            v[x] &= v[y]
        elif op is Op.XOR:
            v[x] ^= v[y]
        elif op is Op.ADD_VX_VY:
            total = v[x] + v[y]
            v[x] = total & 0xFF
            v[VF] = 1 if total > 0xFF else 0
        elif op is Op.SUB:
            a, b = v[x], v[y]
            v[x] = (a - b) & 0xFF
            v[VF] = 1 if a >= b else 0
        elif op is Op.SUBN:
            a, b = v[x], v[y]
            v[x] = (b - a) & 0xFF
            v[VF] = 1 if b >= a else 0
        elif op is Op.SHR:
            val = v[x] if self.modern_quirks else v[y]
            v[x] = val >> 1
            v[VF] = val & 0x01
        elif op is Op.SHL:
            val = v[x] if self.modern_quirks else v[y]
            v[x] = (val << 1) & 0xFF
            v[VF] = (val >> 7) & 0x01
        elif op is Op.RND:
            v[x] = self.rng.randrange(256) & ins.nn

        # -- Index register and memory --
        elif op is Op.LD_I:
            self.i = ins.nnn
        elif op is Op.ADD_I_VX:
            total = self.i + v[x]
            self.i = total & 0xFFFF
            if self.index_overflow_flag:
                v[VF] = 1 if total > ADDR_MASK else 0
        elif op is Op.LD_F_VX:
            self.i = FONT_BASE + GLYPH_HEIGHT * (v[x] & 0xF)
        elif op is Op.LD_B_VX:
            val = v[x]
            self.mem_write8(self.i, val // 100)
            self.mem_write8(self.i + 1, (val // 10) % 10)
            self.mem_write8(self.i + 2, val % 10)
        elif op is Op.LD_I_VX:
            for r in range(x + 1):
                self.mem_write8(self.i + r, v[r])
            if not self.modern_quirks:
                self.i = (self.i + x + 1) & 0xFFFF
        elif op is Op.LD_VX_I:
            for r in range(x + 1):
                v[r] = self.mem_read8(self.i + r)
            if not self.modern_quirks:
                self.i = (self.i + x + 1) & 0xFFFF

        # -- Timers and keypad --
        elif op is Op.LD_VX_DT:
            v[x] = self.timers.delay
        elif op is Op.LD_DT_VX:
            self.timers.delay = v[x]
        elif op is Op.LD_ST_VX:
            self.timers.sound = v[x]
        elif op is Op.LD_VX_K:
            key = self.keypad.key
            if key is None:
                # Re-run this instruction next tick
                self.pc = (self.pc - 2) & ADDR_MASK
                self.waiting_for_key = True
            else:
                v[x] = key
                self.waiting_for_key = False

        # -- Graphics --
        elif op is Op.DRW:
            self.draw_sprite(v[x], v[y], ins.n)

    # -- Sprite drawing --

    def draw_sprite(self, vx: int, vy: int, height: int):
        """XOR an 8-pixel-wide sprite from memory at I onto the display.

        The start position wraps; pixels past the right or bottom edge
        are clipped.  VF becomes 1 if any lit pixel was turned off.
        """
        disp = self.display
        x0 = vx % disp.width
        y0 = vy % disp.height
        collision = 0
        for row in range(height):
            py = y0 + row
            if py >= disp.height:
                break
            bits = self.mem_read8(self.i + row)
            for col in range(8):
                px = x0 + col
                if px >= disp.width:
                    break
                if bits & (0x80 >> col):
                    if disp.toggle(px, py):
                        collision = 1
        self.v[VF] = collision
        disp.dirty = True

    # -- Reset --

    def reset(self):
        """Clear registers, stack and RAM; reinstall the glyph table."""
        self.mem[:] = bytes(MEMORY_SIZE)
        self.mem[FONT_BASE:FONT_BASE + len(FONT_SET)] = FONT_SET
        self.v = [0] * NUM_REGS
        self.i = 0
        self.pc = PROGRAM_BASE
        self.stack = []
        self.cycle_count = 0
        self.waiting_for_key = False

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{r:X}={self.v[r]:#04x}" for r in range(row, row + 4)))
        lines.append(f"  I={self.i:#06x}  PC={self.pc:#05x}  "
                     f"DT={self.timers.delay}  ST={self.timers.sound}")
        stack = " ".join(f"{a:#05x}" for a in self.stack) or "(empty)"
        lines.append(f"  Stack[{len(self.stack)}/{STACK_DEPTH}]: {stack}")
        try:
            nxt = format_instruction(self.peek())
        except DecodeError as e:
            nxt = str(e)
        lines.append(f"  Next: {nxt}")
        return "\n".join(lines)
