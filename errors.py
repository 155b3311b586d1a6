"""
CHIP-8 error taxonomy.

  LoadError            program image does not fit in memory
  DecodeError          instruction word outside the opcode table
  StackOverflowError   CALL with a full call stack
  StackUnderflowError  RET with an empty call stack

All derive from Chip8Error so a host can catch the whole family.
"""


class Chip8Error(Exception):
    """Base for all interpreter errors."""
    pass


class LoadError(Chip8Error):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Program is {size} bytes; at most {limit} fit in memory")


class DecodeError(Chip8Error):
    """An instruction word that matches no documented pattern."""

    def __init__(self, word: int):
        self.word = word & 0xFFFF
        super().__init__(f"Unknown instruction {self.word:#06x}")


class StackOverflowError(Chip8Error):
    def __init__(self, address: int, depth: int):
        self.address = address
        super().__init__(f"Call stack full ({depth} entries) at {address:#05x}")


class StackUnderflowError(Chip8Error):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Return with empty call stack at {address:#05x}")
