#!/usr/bin/env python3
"""
CHIP-8 Launcher / Monitor
==========================
Command-line entry point for the CHIP-8 interpreter.

Provides:
  - ROM loading and quirk selection
  - A pygame window (default)
  - Headless runs that print the final screen
  - Disassembly listings
  - An interactive debug monitor (step / run / breakpoints / inspection)
  - Assembling source files into ROM images

Usage:
  python cli.py ROM [--super-chip] [--index-overflow] [--speed N] [--scale N]
                    [--layout azerty|qwerty] [--mute] [--seed N]
                    [--headless --steps N] [--disassemble] [--monitor]
  python cli.py --assemble SRC OUT [--listing]
"""

from __future__ import annotations
import argparse
import cmd
import logging
import random
import shlex
import sys
from typing import Optional

from asm import assemble, AsmError
from chip8 import MEMORY_SIZE, PROGRAM_BASE
from errors import Chip8Error
from opcodes import disassemble
from system import Chip8System

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class Chip8CLI(cmd.Cmd):
    """Interactive monitor for a CHIP-8 system."""

    intro = (
        "\n"
        "CHIP-8 Monitor.  Type 'help' for commands, 'quit' to exit.\n"
    )
    prompt = "C8> "

    def __init__(self, system: Chip8System):
        super().__init__()
        self.sys = system
        self.breakpoints: set[int] = set()

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (hex with optional 0x prefix, 'pc' or 'i')."""
        s = s.strip().lower()
        if s == "pc":
            return self.sys.cpu.pc
        if s == "i":
            return self.sys.cpu.i
        return int(s, 16) if not s.startswith("0x") else int(s, 0)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def onecmd(self, line):
        """Run one command; a bad number or address keeps the session alive."""
        try:
            return super().onecmd(line)
        except ValueError as e:
            print(f"Error: {e}")
            return False

    def _tick(self) -> bool:
        """Run one tick; print and return False on an interpreter error."""
        try:
            self.sys.tick()
        except Chip8Error as e:
            print(f"Error: {e}")
            return False
        return True

    # ================================================================
    #  Commands
    # ================================================================

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            addr = self.sys.cpu.pc
            text = next(disassemble(self.sys.cpu.mem[addr:addr + 2], addr,
                                    self.sys.modern_quirks))[2]
            if not self._tick():
                break
            print(f"  {addr:03x}: {text}")

    def do_run(self, arg):
        """Run until a breakpoint or error: run [max_steps]"""
        max_steps = self._parse_int(arg) if arg.strip() else 100_000
        for total in range(max_steps):
            if total and self.sys.cpu.pc in self.breakpoints:
                print(f"Breakpoint hit at {self.sys.cpu.pc:03x} after {total} steps")
                return
            if not self._tick():
                return
        print(f"Stopped after {max_steps} steps.")

    def do_reset(self, arg):
        """Reset the machine and reload the program."""
        self.sys.reset()
        print("System reset.")

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set a breakpoint: bp <addr>   (no argument lists them)"""
        if not arg.strip():
            if self.breakpoints:
                print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    print(f"  {a:03x}")
            else:
                print("No breakpoints set.")
            return
        addr = self._parse_addr(arg)
        self.breakpoints.add(addr)
        print(f"Breakpoint set at {addr:03x}")

    def do_bpd(self, arg):
        """Delete a breakpoint: bpd <addr>   (no argument clears all)"""
        if not arg.strip():
            self.breakpoints.clear()
            print("All breakpoints cleared.")
            return
        self.breakpoints.discard(self._parse_addr(arg))

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers, timers and stack."""
        print(self.sys.cpu.dump_regs())
        print(f"  Steps: {self.sys.cpu.cycle_count}")

    def do_dump(self, arg):
        """Hex dump memory: dump <addr> [count]"""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: dump <addr> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        mem = self.sys.cpu.mem
        for row in range(addr, min(addr + count, MEMORY_SIZE), 16):
            chunk = mem[row:min(row + 16, addr + count, MEMORY_SIZE)]
            print(f"  {row:03x}: " + " ".join(f"{b:02x}" for b in chunk))

    def do_disasm(self, arg):
        """Disassemble: disasm [addr] [count]"""
        parts = shlex.split(arg)
        addr = self._parse_addr(parts[0]) if parts else self.sys.cpu.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 8
        data = self.sys.cpu.mem[addr:min(addr + 2 * count, MEMORY_SIZE)]
        for a, word, text in disassemble(data, addr, self.sys.modern_quirks):
            marker = ">" if a == self.sys.cpu.pc else " "
            print(f" {marker}{a:03x}: {word:04x}  {text}")

    def do_screen(self, arg):
        """Print the display as text."""
        print(self.sys.display.to_text())

    # -- Input --

    def do_key(self, arg):
        """Latch a logical key: key <0-f>   |   key none"""
        s = arg.strip().lower()
        if not s:
            held = self.sys.keypad.key
            print(f"  Key: {'none' if held is None else f'{held:x}'}")
            return
        if s == "none":
            self.sys.release()
            return
        try:
            self.sys.press(int(s, 16))
        except ValueError as e:
            print(f"Error: {e}")

    # -- Exit --

    def do_quit(self, arg):
        """Exit the monitor."""
        return True
    do_exit = do_quit
    do_q = do_quit

    def emptyline(self):
        pass


# ---------------------------------------------------------------------------
#  Modes
# ---------------------------------------------------------------------------

def run_headless(system: Chip8System, steps: int) -> int:
    """Tick *steps* times without a window, then print the screen."""
    code = 0
    for done in range(steps):
        try:
            system.tick()
        except Chip8Error as e:
            print(f"Stopped after {done} steps: {e}", file=sys.stderr)
            code = 1
            break
    print(system.display.to_text())
    return code


def print_listing(path: str, modern: bool):
    with open(path, "rb") as f:
        data = f.read()
    for addr, word, text in disassemble(data, PROGRAM_BASE, modern):
        print(f"{addr:03x}: {word:04x}  {text}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8\n"
               "  python cli.py pong.ch8 --super-chip --layout qwerty\n"
               "  python cli.py test.ch8 --headless --steps 2000\n"
               "  python cli.py game.ch8 --monitor\n"
               "  python cli.py --assemble game.asm game.ch8\n"
    )
    parser.add_argument("rom", nargs="?", help="Path to the ROM file")
    parser.add_argument("-s", "--super-chip", action="store_true",
                        help="Use SUPER-CHIP (modern) quirks for shifts, "
                             "FX55/FX65 and BNNN")
    parser.add_argument("--index-overflow", action="store_true",
                        help="FX1E sets VF when I leaves the 12-bit address space")
    parser.add_argument("--speed", type=int, default=700, metavar="IPS",
                        help="Instructions per second (default: 700)")
    parser.add_argument("--scale", type=int, default=10, metavar="N",
                        help="Pixel scale factor for the window (default: 10)")
    parser.add_argument("--layout", choices=["azerty", "qwerty"], default="azerty",
                        help="Physical keyboard layout (default: azerty)")
    parser.add_argument("--mute", action="store_true", help="Disable the beep")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the CXNN random number generator")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window and print the final screen")
    parser.add_argument("--steps", type=int, default=1000,
                        help="Instructions to run in headless mode (default: 1000)")
    parser.add_argument("--disassemble", action="store_true",
                        help="Print a disassembly of the ROM and exit")
    parser.add_argument("--monitor", action="store_true",
                        help="Open the interactive debug monitor")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC to OUT and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging, including an instruction trace")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s")

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        with open(src_path, "r") as f:
            source = f.read()
        try:
            code = assemble(source, PROGRAM_BASE, listing=args.listing)
        except AsmError as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(code)
        print(f"Assembled {src_path} → {out_path} ({len(code)} bytes)")
        return 0

    if not args.rom:
        parser.error("a ROM path is required")

    if args.disassemble:
        print_listing(args.rom, args.super_chip)
        return 0

    try:
        system = Chip8System.from_file(
            args.rom,
            modern_quirks=args.super_chip,
            index_overflow_flag=args.index_overflow,
            rng=random.Random(args.seed) if args.seed is not None else None,
            trace=args.verbose,
        )
    except (OSError, Chip8Error) as e:
        print(f"Cannot load '{args.rom}': {e}", file=sys.stderr)
        return 1

    if args.headless:
        return run_headless(system, args.steps)

    if args.monitor:
        cli = Chip8CLI(system)
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    from display import Chip8Display
    window = Chip8Display(system, scale=args.scale, speed=args.speed,
                          layout=args.layout, mute=args.mute)
    try:
        window.run()
    except ImportError as e:
        print(f"[display] pygame not available: {e}", file=sys.stderr)
        print("[display] Install with: pip install pygame", file=sys.stderr)
        return 1
    return 1 if window.error is not None else 0


if __name__ == "__main__":
    sys.exit(main())
