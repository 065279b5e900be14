"""
Exceptions raised by the CHIP-8 machine.

RomTooLarge is the only one a host is expected to recover from. Everything
deriving from Fault happens inside step() and means the run is over: the
exception carries the pc and opcode of the instruction that faulted.
"""
from __future__ import annotations

from typing import Optional


class Chip8Error(Exception):
    """Base class for every error raised by chip8vm."""


class RomTooLarge(Chip8Error):
    def __init__(self, size: int, limit: int):
        super().__init__(f"ROM is too large for memory ({size} > {limit} bytes)")
        self.size = size
        self.limit = limit


class Fault(Chip8Error):
    """A fatal error raised while executing an instruction."""

    def __init__(self, message: str, pc: Optional[int] = None,
                 opcode: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.pc = pc
        self.opcode = opcode

    def __str__(self) -> str:
        where = []
        if self.opcode is not None:
            where.append(f"opcode {self.opcode:04X}")
        if self.pc is not None:
            where.append(f"PC {self.pc:03X}")
        if where:
            return f"{self.message} ({' at '.join(where)})"
        return self.message


class StackOverflow(Fault):
    pass


class StackUnderflow(Fault):
    pass


class UnknownOpcode(Fault):
    pass


class AddressOutOfRange(Fault):
    pass


class InvalidKeyIndex(Fault):
    """Key index outside 0-F, from the host or from EX9E/EXA1."""
