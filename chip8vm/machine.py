"""
CHIP-8 virtual machine: memory, registers, stack, timers, display and
keyboard latch, plus the fetch/decode/execute cycle.

The machine knows nothing about windows, audio or physical keys. A host
drives it by calling step() at its chosen instruction rate, writes the
keyboard latch with set_key()/clear_keys(), polls should_play_sound(), and
receives a read-only frame through the injected renderer after every draw.

Notes:
- FX55 / FX65 advance I past the last byte transferred (original behaviour).
- 8XY6 / 8XYE shift Vy into Vx. VF gets the raw bit that was shifted out:
  0x01 for a right shift, 0x80 for a left shift.
- 8XY5 / 8XY7 set VF to 1 when a borrow occurred.
- Drawing wraps around screen edges.
- The keyboard latch is level-triggered: a key stays down until the host
  releases it.
"""
from __future__ import annotations

import enum
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple

from chip8vm.errors import (AddressOutOfRange, Fault, InvalidKeyIndex,
                            RomTooLarge, StackOverflow, StackUnderflow,
                            UnknownOpcode)
from chip8vm.timers import TimerClock

logger = logging.getLogger(__name__)

# ==============================
# Constants
# ==============================
MEM_SIZE = 4096
START_ADDRESS = 0x200
PROGRAM_END = 0xEA0  # first address past the program window
MAX_ROM_SIZE = PROGRAM_END - START_ADDRESS
FONT_ADDRESS = 0x000
SCREEN_W, SCREEN_H = 64, 32
STACK_DEPTH = 16
NUM_KEYS = 16

# Classic CHIP-8 4x5 font (each char 5 bytes)
FONTSET = bytes([
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
GLYPH_SIZE = 5

Frame = Tuple[bool, ...]


class Renderer(Protocol):
    def render(self, frame: Frame) -> None:
        """Present a 64x32 frame, indexed row * 64 + col. Must not retain
        anything but the tuple itself."""


class State(enum.Enum):
    RUNNING = "running"
    AWAITING_KEY = "awaiting_key"


@dataclass
class Chip8:
    renderer: Optional[Renderer] = None
    # time source for the 60 Hz timers, in seconds
    clock: Callable[[], float] = time.perf_counter
    rng: random.Random = field(default_factory=random.Random)

    memory: bytearray = field(init=False, repr=False)
    V: List[int] = field(init=False)  # registers V0..VF
    I: int = field(init=False)
    pc: int = field(init=False)
    sp: int = field(init=False)
    stack: List[int] = field(init=False)
    delay_timer: int = field(init=False)
    sound_timer: int = field(init=False)
    display: List[bool] = field(init=False, repr=False)
    keys: List[bool] = field(init=False)
    state: State = field(init=False)
    timer_clock: TimerClock = field(init=False)

    def __post_init__(self):
        self.reset()

    def reset(self):
        self.memory = bytearray(MEM_SIZE)
        self.memory[FONT_ADDRESS:FONT_ADDRESS + len(FONTSET)] = FONTSET
        self.V = [0] * 16
        self.I = 0
        self.pc = START_ADDRESS
        self.sp = 0
        self.stack = [0] * STACK_DEPTH
        self.delay_timer = 0
        self.sound_timer = 0
        self.display = [False] * (SCREEN_W * SCREEN_H)
        self.keys = [False] * NUM_KEYS
        self.state = State.RUNNING
        self.timer_clock = TimerClock(clock=self.clock)

    def load(self, data: bytes):
        if len(data) > MAX_ROM_SIZE:
            raise RomTooLarge(len(data), MAX_ROM_SIZE)
        self.memory[START_ADDRESS:START_ADDRESS + len(data)] = data
        logger.info("ROM loaded (%d bytes)", len(data))

    # =============== Host interface ===============
    def set_key(self, index: int, pressed: bool):
        if not 0 <= index < NUM_KEYS:
            raise InvalidKeyIndex(f"Key index {index} outside 0-F")
        self.keys[index] = bool(pressed)

    def clear_keys(self):
        self.keys = [False] * NUM_KEYS

    def should_play_sound(self) -> bool:
        return self.sound_timer > 1

    def frame(self) -> Frame:
        return tuple(self.display)

    # =============== Core fetch/decode/execute cycle ===============
    def step(self):
        """Run one tick: advance the timers, then execute one instruction."""
        self._tick_timers()
        pc = self.pc
        opcode = self.fetch_opcode()
        try:
            self.pc = self._execute(opcode)
        except Fault as exc:
            exc.pc, exc.opcode = pc, opcode
            raise

    def fetch_opcode(self) -> int:
        if not 0 <= self.pc < MEM_SIZE - 1:
            raise AddressOutOfRange(
                f"Instruction fetch outside memory at {self.pc:#06x}", pc=self.pc)
        hi = self.memory[self.pc]
        lo = self.memory[self.pc + 1]
        return (hi << 8) | lo

    def _tick_timers(self):
        if self.timer_clock.due():
            if self.delay_timer > 0:
                self.delay_timer -= 1
            if self.sound_timer > 0:
                self.sound_timer -= 1

    def _execute(self, opcode: int) -> int:
        """Execute one decoded instruction and return the next pc."""
        next_pc = self.pc + 2

        nnn = opcode & 0x0FFF
        n = opcode & 0x000F
        x = (opcode & 0x0F00) >> 8
        y = (opcode & 0x00F0) >> 4
        kk = opcode & 0x00FF

        if opcode == 0x00E0:  # CLS
            self.display = [False] * (SCREEN_W * SCREEN_H)
        elif opcode == 0x00EE:  # RET
            if self.sp == 0:
                raise StackUnderflow("Stack underflow on RET")
            self.sp -= 1
            next_pc = self.stack[self.sp] + 2
        elif opcode & 0xF000 == 0x1000:  # JP addr
            next_pc = nnn
        elif opcode & 0xF000 == 0x2000:  # CALL addr
            if self.sp == STACK_DEPTH:
                raise StackOverflow("Stack overflow on CALL")
            self.stack[self.sp] = self.pc
            self.sp += 1
            next_pc = nnn
        elif opcode & 0xF000 == 0x3000:  # SE Vx, byte
            if self.V[x] == kk:
                next_pc += 2
        elif opcode & 0xF000 == 0x4000:  # SNE Vx, byte
            if self.V[x] != kk:
                next_pc += 2
        elif opcode & 0xF00F == 0x5000:  # SE Vx, Vy
            if self.V[x] == self.V[y]:
                next_pc += 2
        elif opcode & 0xF000 == 0x6000:  # LD Vx, byte
            self.V[x] = kk
        elif opcode & 0xF000 == 0x7000:  # ADD Vx, byte
            self.V[x] = (self.V[x] + kk) & 0xFF
        elif opcode & 0xF00F == 0x8000:  # LD Vx, Vy
            self.V[x] = self.V[y]
        elif opcode & 0xF00F == 0x8001:  # OR Vx, Vy
            self.V[x] |= self.V[y]
        elif opcode & 0xF00F == 0x8002:  # AND Vx, Vy
            self.V[x] &= self.V[y]
        elif opcode & 0xF00F == 0x8003:  # XOR Vx, Vy
            self.V[x] ^= self.V[y]
        elif opcode & 0xF00F == 0x8004:  # ADD Vx, Vy
            total = self.V[x] + self.V[y]
            self.V[x] = total & 0xFF
            self.V[0xF] = 1 if total > 0xFF else 0
        elif opcode & 0xF00F == 0x8005:  # SUB Vx, Vy (Vx = Vx - Vy)
            borrow = self.V[y] > self.V[x]
            self.V[x] = (self.V[x] - self.V[y]) & 0xFF
            self.V[0xF] = 1 if borrow else 0
        elif opcode & 0xF00F == 0x8006:  # SHR Vx, Vy
            source = self.V[y]
            self.V[x] = source >> 1
            self.V[0xF] = source & 0x01
        elif opcode & 0xF00F == 0x8007:  # SUBN Vx, Vy (Vx = Vy - Vx)
            borrow = self.V[x] > self.V[y]
            self.V[x] = (self.V[y] - self.V[x]) & 0xFF
            self.V[0xF] = 1 if borrow else 0
        elif opcode & 0xF00F == 0x800E:  # SHL Vx, Vy
            source = self.V[y]
            self.V[x] = (source << 1) & 0xFF
            self.V[0xF] = source & 0x80
        elif opcode & 0xF00F == 0x9000:  # SNE Vx, Vy
            if self.V[x] != self.V[y]:
                next_pc += 2
        elif opcode & 0xF000 == 0xA000:  # LD I, addr
            self.I = nnn
        elif opcode & 0xF000 == 0xB000:  # JP V0, addr
            # no wrap: a target past 0xFFF faults on the next fetch
            next_pc = nnn + self.V[0]
        elif opcode & 0xF000 == 0xC000:  # RND Vx, byte
            self.V[x] = self.rng.randint(0, 255) & kk
        elif opcode & 0xF000 == 0xD000:  # DRW Vx, Vy, nibble
            self._draw_sprite(self.V[x], self.V[y], n)
        elif opcode & 0xF0FF == 0xE09E:  # SKP Vx
            if self._is_key_down(self.V[x]):
                next_pc += 2
        elif opcode & 0xF0FF == 0xE0A1:  # SKNP Vx
            if not self._is_key_down(self.V[x]):
                next_pc += 2
        elif opcode & 0xF0FF == 0xF007:  # LD Vx, DT
            self.V[x] = self.delay_timer
        elif opcode & 0xF0FF == 0xF00A:  # LD Vx, K (wait for key)
            key = self._wait_for_key()
            if key is None:
                next_pc = self.pc
            else:
                self.V[x] = key
        elif opcode & 0xF0FF == 0xF015:  # LD DT, Vx
            self.delay_timer = self.V[x]
        elif opcode & 0xF0FF == 0xF018:  # LD ST, Vx
            self.sound_timer = self.V[x]
        elif opcode & 0xF0FF == 0xF01E:  # ADD I, Vx
            self.I = (self.I + self.V[x]) & 0xFFFF
        elif opcode & 0xF0FF == 0xF029:  # LD F, Vx
            digit = self.V[x]
            if digit > 0xF:
                raise AddressOutOfRange(f"No font glyph for value {digit}")
            self.I = FONT_ADDRESS + digit * GLYPH_SIZE
        elif opcode & 0xF0FF == 0xF033:  # LD B, Vx (BCD)
            val = self.V[x]
            self._check_range(self.I, 3)
            self.memory[self.I] = val // 100
            self.memory[self.I + 1] = (val // 10) % 10
            self.memory[self.I + 2] = val % 10
        elif opcode & 0xF0FF == 0xF055:  # LD [I], Vx
            self._check_range(self.I, x + 1)
            self.memory[self.I:self.I + x + 1] = bytes(self.V[:x + 1])
            self.I = (self.I + x + 1) & 0xFFFF
        elif opcode & 0xF0FF == 0xF065:  # LD Vx, [I]
            self._check_range(self.I, x + 1)
            self.V[:x + 1] = list(self.memory[self.I:self.I + x + 1])
            self.I = (self.I + x + 1) & 0xFFFF
        else:
            raise UnknownOpcode(f"Unknown opcode: {opcode:04X}")

        return next_pc

    # =============== Helpers ===============
    def _check_range(self, address: int, length: int = 1):
        if address < 0 or address + length > MEM_SIZE:
            raise AddressOutOfRange(
                f"Memory access {address:#06x}..{address + length - 1:#06x} "
                f"outside 0x000-0xFFF")

    def _is_key_down(self, chip8_key: int) -> bool:
        if not 0 <= chip8_key < NUM_KEYS:
            raise InvalidKeyIndex(f"Key index {chip8_key} outside 0-F")
        return self.keys[chip8_key]

    def _wait_for_key(self) -> Optional[int]:
        # lowest-indexed pressed key wins
        for i in range(NUM_KEYS):
            if self.keys[i]:
                if self.state is State.AWAITING_KEY:
                    logger.debug("Key %X released the wait at PC %03X", i, self.pc)
                self.state = State.RUNNING
                return i
        if self.state is State.RUNNING:
            logger.debug("Waiting for a key at PC %03X", self.pc)
        self.state = State.AWAITING_KEY
        return None

    def _draw_sprite(self, x_pos: int, y_pos: int, height: int):
        self._check_range(self.I, height)
        collision = False
        for row in range(height):
            sprite = self.memory[self.I + row]
            py = (y_pos + row) % SCREEN_H
            for col in range(8):
                bit = (sprite >> (7 - col)) & 1
                if bit:
                    px = (x_pos + col) % SCREEN_W
                    idx = py * SCREEN_W + px
                    if self.display[idx]:
                        collision = True
                    self.display[idx] = not self.display[idx]
        self.V[0xF] = 1 if collision else 0
        if self.renderer is not None:
            self.renderer.render(self.frame())
