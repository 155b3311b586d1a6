"""
CHIP-8 Instruction Decoder
===========================
Maps a 16-bit instruction word to an ``Instruction`` tuple.

Every word is split into four nibbles:

    F X Y N      F   = family (first nibble)
                 X,Y = register indices
                 N   = 4-bit immediate
                 NN  = low byte (8-bit immediate)
                 NNN = low 12 bits (address)

``decode`` is a pure function of the word and the quirk mode.  Only one
family decodes differently between modes: ``BNNN`` is "jump to NNN + V0"
in legacy mode and "jump to XNN + VX" in modern (SUPER-CHIP) mode.

Usage:
    from opcodes import decode, Op
    ins = decode(0x6005)
    assert ins.op is Op.LD_VX_NN and ins.x == 0 and ins.nn == 5
"""

from __future__ import annotations
from enum import Enum
from typing import Iterator, NamedTuple

from errors import DecodeError


class Op(Enum):
    SYS = "0NNN"
    CLS = "00E0"
    RET = "00EE"
    JP = "1NNN"
    CALL = "2NNN"
    SE_VX_NN = "3XNN"
    SNE_VX_NN = "4XNN"
    SE_VX_VY = "5XY0"
    LD_VX_NN = "6XNN"
    ADD_VX_NN = "7XNN"
    LD_VX_VY = "8XY0"
    OR = "8XY1"
    AND = "8XY2"
    XOR = "8XY3"
    ADD_VX_VY = "8XY4"
    SUB = "8XY5"
    SHR = "8XY6"
    SUBN = "8XY7"
    SHL = "8XYE"
    SNE_VX_VY = "9XY0"
    LD_I = "ANNN"
    JP_V0 = "BNNN"
    JP_VX = "BXNN"
    RND = "CXNN"
    DRW = "DXYN"
    SKP = "EX9E"
    SKNP = "EXA1"
    LD_VX_DT = "FX07"
    LD_VX_K = "FX0A"
    LD_DT_VX = "FX15"
    LD_ST_VX = "FX18"
    ADD_I_VX = "FX1E"
    LD_F_VX = "FX29"
    LD_B_VX = "FX33"
    LD_I_VX = "FX55"
    LD_VX_I = "FX65"


class Instruction(NamedTuple):
    """A decoded instruction.  All fields are always extracted; each
    operation reads only the ones its pattern names."""
    op: Op
    word: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int


# Exact-word operations in family 0
_SYS_EXACT = {0x00E0: Op.CLS, 0x00EE: Op.RET}

# Family 8 keyed on the N nibble
_ALU_OPS = {
    0x0: Op.LD_VX_VY, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR,
    0x4: Op.ADD_VX_VY, 0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN,
    0xE: Op.SHL,
}

# Family E keyed on NN
_KEY_OPS = {0x9E: Op.SKP, 0xA1: Op.SKNP}

# Family F keyed on NN
_MISC_OPS = {
    0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX, 0x1E: Op.ADD_I_VX, 0x29: Op.LD_F_VX,
    0x33: Op.LD_B_VX, 0x55: Op.LD_I_VX, 0x65: Op.LD_VX_I,
}

# Families selected by the first nibble alone
_FAMILY_OPS = {
    0x1: Op.JP, 0x2: Op.CALL, 0x3: Op.SE_VX_NN, 0x4: Op.SNE_VX_NN,
    0x6: Op.LD_VX_NN, 0x7: Op.ADD_VX_NN, 0xA: Op.LD_I, 0xC: Op.RND,
    0xD: Op.DRW,
}


def nibbles(word: int) -> tuple[int, int, int, int]:
    """Split a word into its four nibbles, most significant first."""
    return ((word >> 12) & 0xF, (word >> 8) & 0xF,
            (word >> 4) & 0xF, word & 0xF)


def decode(word: int, modern: bool = False) -> Instruction:
    """Decode one 16-bit instruction word.

    Raises DecodeError for any word outside the documented table.
    """
    word &= 0xFFFF
    f, x, y, n = nibbles(word)
    nn = word & 0xFF
    nnn = word & 0xFFF

    if f == 0x0:
        op = _SYS_EXACT.get(word, Op.SYS)
    elif f in _FAMILY_OPS:
        op = _FAMILY_OPS[f]
    elif f == 0x5 or f == 0x9:
        if n != 0:
            raise DecodeError(word)
        op = Op.SE_VX_VY if f == 0x5 else Op.SNE_VX_VY
    elif f == 0x8:
        op = _ALU_OPS.get(n)
    elif f == 0xB:
        op = Op.JP_VX if modern else Op.JP_V0
    elif f == 0xE:
        op = _KEY_OPS.get(nn)
    else:  # 0xF
        op = _MISC_OPS.get(nn)

    if op is None:
        raise DecodeError(word)
    return Instruction(op, word, x, y, n, nn, nnn)


# ---------------------------------------------------------------------------
#  Disassembly
# ---------------------------------------------------------------------------

def format_instruction(ins: Instruction) -> str:
    """Render an instruction in Cowgod mnemonics."""
    op, x, y = ins.op, ins.x, ins.y
    if op is Op.SYS:        return f"sys {ins.nnn:#05x}"
    if op is Op.CLS:        return "cls"
    if op is Op.RET:        return "ret"
    if op is Op.JP:         return f"jp {ins.nnn:#05x}"
    if op is Op.CALL:       return f"call {ins.nnn:#05x}"
    if op is Op.SE_VX_NN:   return f"se v{x:x}, {ins.nn:#04x}"
    if op is Op.SNE_VX_NN:  return f"sne v{x:x}, {ins.nn:#04x}"
    if op is Op.SE_VX_VY:   return f"se v{x:x}, v{y:x}"
    if op is Op.LD_VX_NN:   return f"ld v{x:x}, {ins.nn:#04x}"
    if op is Op.ADD_VX_NN:  return f"add v{x:x}, {ins.nn:#04x}"
    if op is Op.LD_VX_VY:   return f"ld v{x:x}, v{y:x}"
    if op is Op.OR:         return f"or v{x:x}, v{y:x}"
    if op is Op.AND:        return f"and v{x:x}, v{y:x}"
    if op is Op.XOR:        return f"xor v{x:x}, v{y:x}"
    if op is Op.ADD_VX_VY:  return f"add v{x:x}, v{y:x}"
    if op is Op.SUB:        return f"sub v{x:x}, v{y:x}"
    if op is Op.SHR:        return f"shr v{x:x}, v{y:x}"
    if op is Op.SUBN:       return f"subn v{x:x}, v{y:x}"
    if op is Op.SHL:        return f"shl v{x:x}, v{y:x}"
    if op is Op.SNE_VX_VY:  return f"sne v{x:x}, v{y:x}"
    if op is Op.LD_I:       return f"ld i, {ins.nnn:#05x}"
    if op is Op.JP_V0:      return f"jp v0, {ins.nnn:#05x}"
    if op is Op.JP_VX:      return f"jp v{x:x}, {ins.nnn:#05x}"
    if op is Op.RND:        return f"rnd v{x:x}, {ins.nn:#04x}"
    if op is Op.DRW:        return f"drw v{x:x}, v{y:x}, {ins.n}"
    if op is Op.SKP:        return f"skp v{x:x}"
    if op is Op.SKNP:       return f"sknp v{x:x}"
    if op is Op.LD_VX_DT:   return f"ld v{x:x}, dt"
    if op is Op.LD_VX_K:    return f"ld v{x:x}, k"
    if op is Op.LD_DT_VX:   return f"ld dt, v{x:x}"
    if op is Op.LD_ST_VX:   return f"ld st, v{x:x}"
    if op is Op.ADD_I_VX:   return f"add i, v{x:x}"
    if op is Op.LD_F_VX:    return f"ld f, v{x:x}"
    if op is Op.LD_B_VX:    return f"ld b, v{x:x}"
    if op is Op.LD_I_VX:    return f"ld [i], v{x:x}"
    return f"ld v{x:x}, [i]"   # LD_VX_I


def disassemble(data: bytes | bytearray, base: int = 0x200,
                modern: bool = False) -> Iterator[tuple[int, int, str]]:
    """Yield (address, word, text) for each 2-byte word in *data*.

    A trailing odd byte is emitted as a ``.db`` line.  Words that do not
    decode are shown as ``.dw`` data.
    """
    for off in range(0, len(data) - 1, 2):
        word = (data[off] << 8) | data[off + 1]
        try:
            text = format_instruction(decode(word, modern))
        except DecodeError:
            text = f".dw {word:#06x}"
        yield base + off, word, text
    if len(data) % 2:
        last = data[-1]
        yield base + len(data) - 1, last, f".db {last:#04x}"
