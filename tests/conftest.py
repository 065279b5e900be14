"""
Pytest configuration for the chip8vm test suite.

pygame is forced onto its dummy video/audio drivers so the frontend tests
run without a display or sound card.
"""
import os

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import pytest

from chip8vm.machine import START_ADDRESS, Chip8


class FakeClock:
    """Manually advanced time source for the timer tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingRenderer:
    def __init__(self):
        self.frames = []

    def render(self, frame):
        self.frames.append(frame)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def chip8(clock, renderer):
    return Chip8(renderer=renderer, clock=clock)


def program(chip8: Chip8, *opcodes: int, at: int = START_ADDRESS):
    """Write 16-bit opcodes big-endian starting at ``at``."""
    for i, op in enumerate(opcodes):
        chip8.memory[at + 2 * i] = op >> 8
        chip8.memory[at + 2 * i + 1] = op & 0xFF
