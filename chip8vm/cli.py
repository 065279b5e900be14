"""
Command line entry point.

Run:
  chip8vm path/to/rom [--scale 15] [--clock 500] [--tone 440] [--verbose]
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from chip8vm.errors import Fault, RomTooLarge
from chip8vm.machine import Chip8

logger = logging.getLogger("chip8vm")

EXIT_OK = 0
EXIT_BAD_ROM = 1
EXIT_FAULT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8vm", description="CHIP-8 interpreter")
    parser.add_argument("rom", help="Path to CHIP-8 ROM")
    parser.add_argument("--scale", type=int, default=15,
                        help="Pixel scale factor (default 15)")
    parser.add_argument("--clock", type=int, default=500,
                        help="Instructions per second (default 500)")
    parser.add_argument("--tone", type=int, default=440,
                        help="Beep tone frequency in Hz, 0 to mute")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log debug output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s")

    chip8 = Chip8()
    try:
        with open(args.rom, 'rb') as f:
            chip8.load(f.read())
    except OSError as e:
        print(f"Cannot read ROM {args.rom}: {e.strerror}", file=sys.stderr)
        return EXIT_BAD_ROM
    except RomTooLarge as e:
        print(f"Cannot load ROM {args.rom}: {e}", file=sys.stderr)
        return EXIT_BAD_ROM

    # pygame stays out of the import path until a window is needed
    import pygame
    from chip8vm.frontend import Frontend

    pygame.init()
    try:
        frontend = Frontend(chip8, scale=args.scale, tone_hz=args.tone or None)
        frontend.render(chip8.frame())
        while frontend.handle_events():
            chip8.step()
            frontend.update_sound()
            frontend.tick(args.clock)
    except Fault as e:
        logger.error("Machine fault: %s", e)
        return EXIT_FAULT
    except KeyboardInterrupt:
        print("\nExiting.")
    finally:
        pygame.quit()
    return EXIT_OK
