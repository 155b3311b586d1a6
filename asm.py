"""
CHIP-8 Assembler
=================
Translates Cowgod-style assembly text into a CHIP-8 program image.

Supports:
  - Labels (``name:`` alone or in front of an instruction)
  - All instructions of the opcode table, lower or upper case
  - Immediate literals (decimal, 0x hex, 0b binary)
  - Comments (';' to end of line)
  - .org, .db, .dw directives (.dw is big-endian, like instructions)

Usage:
  from asm import assemble
  image = assemble(source_text)          # assembled for 0x200
"""

from __future__ import annotations

PROGRAM_BASE = 0x200

# ---------------------------------------------------------------------------
#  Mnemonic tables
# ---------------------------------------------------------------------------

# Two-register ALU ops (family 0x8), keyed to their N nibble
ALU_SUB = {
    "or": 0x1, "and": 0x2, "xor": 0x3, "sub": 0x5,
    "shr": 0x6, "subn": 0x7, "shl": 0xE,
}

# FX.. ops written as "ld <special>, vX"
LD_TO_SPECIAL = {"dt": 0x15, "st": 0x18, "f": 0x29, "b": 0x33, "[i]": 0x55}

# FX.. ops written as "ld vX, <special>"
LD_FROM_SPECIAL = {"dt": 0x07, "k": 0x0A, "[i]": 0x65}


def _parse_reg(tok: str) -> int:
    """Parse 'v0'-'vf' (either case). Returns register index."""
    tok = tok.strip().lower()
    if len(tok) == 2 and tok[0] == "v" and tok[1] in "0123456789abcdef":
        return int(tok[1], 16)
    raise ValueError(f"Invalid register: {tok!r}")


def _is_reg(tok: str) -> bool:
    try:
        _parse_reg(tok)
        return True
    except ValueError:
        return False


def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, 0x hex or 0b binary)."""
    return int(tok.strip(), 0)


def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]


def _split_mnemonic(text: str) -> tuple[str, str]:
    """Split 'MNEM operands' → (mnem, operands_str)."""
    parts = text.split(None, 1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def _clean(source: str) -> list[tuple[int, str]]:
    """Strip comments and blank lines; split leading labels onto their own line."""
    out: list[tuple[int, str]] = []
    for lineno, raw in enumerate(source.split("\n"), 1):
        text = raw.split(";", 1)[0].strip()
        while text:
            head, sep, tail = text.partition(":")
            if sep and head.strip() and " " not in head.strip():
                out.append((lineno, head.strip() + ":"))
                text = tail.strip()
            else:
                out.append((lineno, text))
                break
    return out


def _size_of(lineno: int, text: str) -> int:
    lower = text.lower()
    if lower.startswith(".db"):
        return len(_split_ops(text[3:]))
    if lower.startswith(".dw"):
        return 2 * len(_split_ops(text[3:]))
    return 2


def assemble(source: str, base_addr: int = PROGRAM_BASE,
             listing: bool = False) -> bytearray:
    """
    Two-pass assembler.
    Pass 1: collect labels, compute sizes.
    Pass 2: emit bytes with resolved addresses.
    If listing=True, print an address/hex/source listing to stdout.
    """
    cleaned = _clean(source)

    # ---- Pass 1: label collection ----
    labels: dict[str, int] = {}
    pc = base_addr
    for lineno, text in cleaned:
        if text.endswith(":"):
            lbl = text[:-1]
            if lbl in labels:
                raise AsmError(lineno, f"Duplicate label: {lbl}")
            labels[lbl] = pc
            continue
        if text.lower().startswith(".org"):
            pc = _resolve(lineno, text[4:], labels)
            continue
        pc += _size_of(lineno, text)

    # ---- Pass 2: emit bytes ----
    code = bytearray()
    pc = base_addr
    listing_lines: list[tuple[int, str, str]] = []

    for lineno, text in cleaned:
        if text.endswith(":"):
            continue
        start_pc = pc
        lower = text.lower()
        if lower.startswith(".org"):
            target = _resolve(lineno, text[4:], labels)
            if target < pc:
                raise AsmError(lineno, f".org {target:#x} is behind current address {pc:#x}")
            code.extend(bytes(target - pc))
            pc = target
            continue
        if lower.startswith(".db"):
            chunk = bytearray(_resolve(lineno, t, labels) & 0xFF
                              for t in _split_ops(text[3:]))
        elif lower.startswith(".dw"):
            chunk = bytearray()
            for t in _split_ops(text[3:]):
                chunk.extend((_resolve(lineno, t, labels) & 0xFFFF).to_bytes(2, "big"))
        else:
            word = _encode(lineno, text, labels)
            chunk = bytearray(word.to_bytes(2, "big"))
        code.extend(chunk)
        pc += len(chunk)
        if listing:
            listing_lines.append((start_pc, " ".join(f"{b:02X}" for b in chunk[:8]), text))

    if listing:
        for addr, hexstr, src in listing_lines:
            print(f"{addr:04X}  {hexstr:<24s} {src}")
    return code


def _resolve(lineno: int, tok: str, labels: dict[str, int]) -> int:
    """Resolve a token that is either an immediate or a label reference."""
    tok = tok.strip()
    if tok in labels:
        return labels[tok]
    try:
        return _parse_imm(tok)
    except ValueError:
        raise AsmError(lineno, f"Unknown label or bad number: {tok!r}") from None


def _reg(lineno: int, tok: str) -> int:
    try:
        return _parse_reg(tok)
    except ValueError as e:
        raise AsmError(lineno, str(e)) from None


def _addr(lineno: int, tok: str, labels: dict[str, int]) -> int:
    val = _resolve(lineno, tok, labels)
    if not 0 <= val <= 0xFFF:
        raise AsmError(lineno, f"Address out of range: {val:#x}")
    return val


def _byte(lineno: int, tok: str, labels: dict[str, int]) -> int:
    val = _resolve(lineno, tok, labels)
    if not -0x80 <= val <= 0xFF:
        raise AsmError(lineno, f"Byte out of range: {val}")
    return val & 0xFF


def _encode(lineno: int, text: str, labels: dict[str, int]) -> int:
    """Encode one instruction to its 16-bit word."""
    mnem, rest = _split_mnemonic(text)
    m = mnem.lower()
    ops = _split_ops(rest)
    low = [o.lower() for o in ops]

    def want(n: int):
        if len(ops) != n:
            raise AsmError(lineno, f"{m} expects {n} operand(s), got {len(ops)}")

    if m == "cls":
        want(0)
        return 0x00E0
    if m == "ret":
        want(0)
        return 0x00EE
    if m == "sys":
        want(1)
        return _addr(lineno, ops[0], labels)
    if m == "call":
        want(1)
        return 0x2000 | _addr(lineno, ops[0], labels)
    if m == "jp":
        if len(ops) == 1:
            return 0x1000 | _addr(lineno, ops[0], labels)
        want(2)
        x = _reg(lineno, ops[0])
        target = _addr(lineno, ops[1], labels)
        if x != 0 and (target >> 8) != x:
            raise AsmError(lineno, f"jp v{x:x} needs a target in {x:x}00..{x:x}ff")
        return 0xB000 | target
    if m in ("se", "sne"):
        want(2)
        x = _reg(lineno, ops[0])
        if _is_reg(ops[1]):
            return (0x5000 if m == "se" else 0x9000) | (x << 8) | (_reg(lineno, ops[1]) << 4)
        return (0x3000 if m == "se" else 0x4000) | (x << 8) | _byte(lineno, ops[1], labels)
    if m == "add":
        want(2)
        if low[0] == "i":
            return 0xF01E | (_reg(lineno, ops[1]) << 8)
        x = _reg(lineno, ops[0])
        if _is_reg(ops[1]):
            return 0x8004 | (x << 8) | (_reg(lineno, ops[1]) << 4)
        return 0x7000 | (x << 8) | _byte(lineno, ops[1], labels)
    if m in ALU_SUB:
        if m in ("shr", "shl") and len(ops) == 1:
            ops.append(ops[0])
        want(2)
        return 0x8000 | (_reg(lineno, ops[0]) << 8) | (_reg(lineno, ops[1]) << 4) | ALU_SUB[m]
    if m == "rnd":
        want(2)
        return 0xC000 | (_reg(lineno, ops[0]) << 8) | _byte(lineno, ops[1], labels)
    if m == "drw":
        want(3)
        n = _resolve(lineno, ops[2], labels)
        if not 0 <= n <= 0xF:
            raise AsmError(lineno, f"Sprite height out of range: {n}")
        return 0xD000 | (_reg(lineno, ops[0]) << 8) | (_reg(lineno, ops[1]) << 4) | n
    if m in ("skp", "sknp"):
        want(1)
        return (0xE09E if m == "skp" else 0xE0A1) | (_reg(lineno, ops[0]) << 8)
    if m == "ld":
        want(2)
        dst, src = low
        if dst == "i":
            return 0xA000 | _addr(lineno, ops[1], labels)
        if dst in LD_TO_SPECIAL:
            return 0xF000 | (_reg(lineno, ops[1]) << 8) | LD_TO_SPECIAL[dst]
        x = _reg(lineno, ops[0])
        if src in LD_FROM_SPECIAL:
            return 0xF000 | (x << 8) | LD_FROM_SPECIAL[src]
        if _is_reg(ops[1]):
            return 0x8000 | (x << 8) | (_reg(lineno, ops[1]) << 4)
        return 0x6000 | (x << 8) | _byte(lineno, ops[1], labels)

    raise AsmError(lineno, f"Unknown mnemonic: {mnem}")
