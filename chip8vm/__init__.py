"""CHIP-8 interpreter."""
from chip8vm.errors import (AddressOutOfRange, Chip8Error, Fault,
                            InvalidKeyIndex, RomTooLarge, StackOverflow,
                            StackUnderflow, UnknownOpcode)
from chip8vm.machine import Chip8, Renderer, State
from chip8vm.timers import TimerClock

__version__ = "1.0.0"

__all__ = [
    "AddressOutOfRange", "Chip8", "Chip8Error", "Fault", "InvalidKeyIndex",
    "Renderer", "RomTooLarge", "StackOverflow", "StackUnderflow", "State",
    "TimerClock", "UnknownOpcode",
]
