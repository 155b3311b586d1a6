"""
Decoder tests: one representative word per documented opcode pattern,
the quirk-dependent BNNN family, rejection of undocumented words and the
disassembler built on top of the decoder.
"""
import unittest

from errors import Chip8Error, DecodeError
from opcodes import Op, decode, disassemble, format_instruction, nibbles

# (word, op, expected fields) — fields not listed are not checked
OPCODE_TABLE = [
    (0x0123, Op.SYS,       {"nnn": 0x123}),
    (0x00E0, Op.CLS,       {}),
    (0x00EE, Op.RET,       {}),
    (0x1ABC, Op.JP,        {"nnn": 0xABC}),
    (0x2ABC, Op.CALL,      {"nnn": 0xABC}),
    (0x3A12, Op.SE_VX_NN,  {"x": 0xA, "nn": 0x12}),
    (0x4A12, Op.SNE_VX_NN, {"x": 0xA, "nn": 0x12}),
    (0x5AB0, Op.SE_VX_VY,  {"x": 0xA, "y": 0xB}),
    (0x6A12, Op.LD_VX_NN,  {"x": 0xA, "nn": 0x12}),
    (0x7A12, Op.ADD_VX_NN, {"x": 0xA, "nn": 0x12}),
    (0x8AB0, Op.LD_VX_VY,  {"x": 0xA, "y": 0xB}),
    (0x8AB1, Op.OR,        {"x": 0xA, "y": 0xB}),
    (0x8AB2, Op.AND,       {"x": 0xA, "y": 0xB}),
    (0x8AB3, Op.XOR,       {"x": 0xA, "y": 0xB}),
    (0x8AB4, Op.ADD_VX_VY, {"x": 0xA, "y": 0xB}),
    (0x8AB5, Op.SUB,       {"x": 0xA, "y": 0xB}),
    (0x8AB6, Op.SHR,       {"x": 0xA, "y": 0xB}),
    (0x8AB7, Op.SUBN,      {"x": 0xA, "y": 0xB}),
    (0x8ABE, Op.SHL,       {"x": 0xA, "y": 0xB}),
    (0x9AB0, Op.SNE_VX_VY, {"x": 0xA, "y": 0xB}),
    (0xAABC, Op.LD_I,      {"nnn": 0xABC}),
    (0xB123, Op.JP_V0,     {"nnn": 0x123}),
    (0xCA12, Op.RND,       {"x": 0xA, "nn": 0x12}),
    (0xDAB5, Op.DRW,       {"x": 0xA, "y": 0xB, "n": 5}),
    (0xEA9E, Op.SKP,       {"x": 0xA}),
    (0xEAA1, Op.SKNP,      {"x": 0xA}),
    (0xFA07, Op.LD_VX_DT,  {"x": 0xA}),
    (0xFA0A, Op.LD_VX_K,   {"x": 0xA}),
    (0xFA15, Op.LD_DT_VX,  {"x": 0xA}),
    (0xFA18, Op.LD_ST_VX,  {"x": 0xA}),
    (0xFA1E, Op.ADD_I_VX,  {"x": 0xA}),
    (0xFA29, Op.LD_F_VX,   {"x": 0xA}),
    (0xFA33, Op.LD_B_VX,   {"x": 0xA}),
    (0xFA55, Op.LD_I_VX,   {"x": 0xA}),
    (0xFA65, Op.LD_VX_I,   {"x": 0xA}),
]

UNDOCUMENTED = [
    0x5AB1, 0x5ABF, 0x9AB1, 0x9ABE,
    0x8AB8, 0x8AB9, 0x8ABA, 0x8ABD, 0x8ABF,
    0xEA00, 0xEA9F, 0xEAA0, 0xEAFF,
    0xFA00, 0xFA08, 0xFA30, 0xFA56, 0xFA75, 0xFAFF,
]


class TestDecode(unittest.TestCase):
    def test_nibbles(self):
        self.assertEqual(nibbles(0xDAB5), (0xD, 0xA, 0xB, 0x5))

    def test_every_documented_pattern(self):
        for word, op, fields in OPCODE_TABLE:
            with self.subTest(word=f"{word:04X}"):
                ins = decode(word)
                self.assertIs(ins.op, op)
                self.assertEqual(ins.word, word)
                for name, value in fields.items():
                    self.assertEqual(getattr(ins, name), value, name)

    def test_table_covers_every_variant_but_modern_jump(self):
        seen = {op for _, op, _ in OPCODE_TABLE}
        self.assertEqual(set(Op) - seen, {Op.JP_VX})

    def test_immediates_extracted(self):
        ins = decode(0x7FED)
        self.assertEqual((ins.x, ins.y, ins.n, ins.nn, ins.nnn),
                         (0xF, 0xE, 0xD, 0xED, 0xFED))

    def test_jump_with_offset_legacy(self):
        ins = decode(0xB3A0, modern=False)
        self.assertIs(ins.op, Op.JP_V0)
        self.assertEqual(ins.nnn, 0x3A0)

    def test_jump_with_offset_modern(self):
        ins = decode(0xB3A0, modern=True)
        self.assertIs(ins.op, Op.JP_VX)
        self.assertEqual(ins.x, 3)
        self.assertEqual(ins.nnn, 0x3A0)

    def test_shift_keeps_y_in_both_modes(self):
        for modern in (False, True):
            ins = decode(0x8456, modern=modern)
            self.assertIs(ins.op, Op.SHR)
            self.assertEqual((ins.x, ins.y), (4, 5))

    def test_only_bnnn_depends_on_mode(self):
        for word, op, _ in OPCODE_TABLE:
            if op is Op.JP_V0:
                continue
            self.assertIs(decode(word, modern=True).op, op)

    def test_undocumented_words_raise(self):
        for word in UNDOCUMENTED:
            with self.subTest(word=f"{word:04X}"):
                with self.assertRaises(DecodeError) as ctx:
                    decode(word)
                self.assertEqual(ctx.exception.word, word)
                self.assertIn(f"{word:#06x}", str(ctx.exception))

    def test_decode_error_is_an_interpreter_error(self):
        self.assertTrue(issubclass(DecodeError, Chip8Error))

    def test_family_zero_is_a_catch_all(self):
        self.assertIs(decode(0x0FFF).op, Op.SYS)
        self.assertIs(decode(0x00E1).op, Op.SYS)

    def test_whole_word_space(self):
        """Only families 0, 5, 8, 9, E and F contain undefined words."""
        always_valid = {0x1, 0x2, 0x3, 0x4, 0x6, 0x7, 0xA, 0xB, 0xC, 0xD}
        rejected = 0
        for word in range(0x10000):
            try:
                decode(word)
            except DecodeError:
                rejected += 1
                self.assertNotIn(word >> 12, always_valid)
        # 5XY1-5XYF and 9XY1-9XYF, 8XY8-8XYD and 8XYF, and
        # 254 unused low bytes in family E plus 247 in family F
        self.assertEqual(rejected, 2 * 256 * 15 + 256 * 7 + 16 * 254 + 16 * 247)


class TestDisassemble(unittest.TestCase):
    def test_format(self):
        self.assertEqual(format_instruction(decode(0x6A12)), "ld va, 0x12")
        self.assertEqual(format_instruction(decode(0xDAB5)), "drw va, vb, 5")
        self.assertEqual(format_instruction(decode(0xFA55)), "ld [i], va")
        self.assertEqual(format_instruction(decode(0xB3A0, modern=True)),
                         "jp v3, 0x3a0")

    def test_listing(self):
        data = bytes([0x60, 0x05, 0x51, 0x21, 0xAA])
        lines = list(disassemble(data))
        self.assertEqual(lines[0], (0x200, 0x6005, "ld v0, 0x05"))
        self.assertEqual(lines[1], (0x202, 0x5121, ".dw 0x5121"))
        self.assertEqual(lines[2], (0x204, 0xAA, ".db 0xaa"))

    def test_listing_base(self):
        addrs = [a for a, _, _ in disassemble(bytes(6), base=0x300)]
        self.assertEqual(addrs, [0x300, 0x302, 0x304])


if __name__ == "__main__":
    unittest.main()
