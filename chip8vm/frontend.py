"""
Pygame frontend for the CHIP-8 machine.

Keyboard mapping (common layout):

  CHIP-8  =>  Keyboard
  1 2 3 C =>  1 2 3 4
  4 5 6 D =>  Q W E R
  7 8 9 E =>  A S D F
  A 0 B F =>  Z X C V
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pygame

from chip8vm.machine import SCREEN_H, SCREEN_W, Chip8, Frame

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
BACKGROUND = (0, 0, 0)
FOREGROUND = (255, 255, 255)

# Keyboard mapping: CHIP-8 key index -> pygame key
KEYMAP = {
    0x0: pygame.K_x,
    0x1: pygame.K_1,
    0x2: pygame.K_2,
    0x3: pygame.K_3,
    0x4: pygame.K_q,
    0x5: pygame.K_w,
    0x6: pygame.K_e,
    0x7: pygame.K_a,
    0x8: pygame.K_s,
    0x9: pygame.K_d,
    0xA: pygame.K_z,
    0xB: pygame.K_c,
    0xC: pygame.K_4,
    0xD: pygame.K_r,
    0xE: pygame.K_f,
    0xF: pygame.K_v,
}
KEY_LOOKUP = {pgk: k_idx for k_idx, pgk in KEYMAP.items()}


def square_wave(tone_hz: int, sample_rate: int = SAMPLE_RATE,
                duration: float = 0.1) -> np.ndarray:
    """One buffer of a signed 16-bit square wave, loopable when the duration
    holds a whole number of periods."""
    t = np.arange(int(sample_rate * duration))
    wave = ((t * tone_hz * 2 / sample_rate) % 2 >= 1).astype('float32') * 2 - 1
    return (wave * 32767).astype('int16')


class Frontend:
    """Window, keyboard and beeper for one machine.

    Passes itself to the machine as its renderer. Pass ``surface`` to draw
    off-screen instead of opening a window, and ``tone_hz=None`` to run
    without audio.
    """

    def __init__(self, chip8: Chip8, scale: int = 10,
                 tone_hz: Optional[int] = 440,
                 surface: Optional[pygame.Surface] = None):
        self.chip8 = chip8
        self.scale = max(1, int(scale))
        if surface is None:
            surface = pygame.display.set_mode(
                (SCREEN_W * self.scale, SCREEN_H * self.scale))
            pygame.display.set_caption("chip8vm")
        self.surface = surface
        self.clock = pygame.time.Clock()
        self.sound = None
        self.beeping = False
        if tone_hz:
            self._init_audio(tone_hz)
        chip8.renderer = self

    def _init_audio(self, tone_hz: int):
        try:
            pygame.mixer.pre_init(SAMPLE_RATE, -16, 1, 256)
            pygame.mixer.init()
        except pygame.error as e:
            logger.warning("Audio disabled: %s", e)
            return
        self.sound = pygame.mixer.Sound(square_wave(tone_hz))
        self.sound.set_volume(0.2)

    def handle_key(self, key: int, is_down: bool):
        k_idx = KEY_LOOKUP.get(key)
        if k_idx is not None:
            self.chip8.set_key(k_idx, is_down)

    def handle_events(self) -> bool:
        """Drain the pygame event queue. Returns False once the user quits."""
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return False
            elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
                # Escape to quit
                if event.key == pygame.K_ESCAPE:
                    return False
                self.handle_key(event.key, event.type == pygame.KEYDOWN)
            elif event.type == pygame.WINDOWFOCUSLOST:
                # KEYUP for held keys never arrives once focus is gone
                self.chip8.clear_keys()
        return True

    def render(self, frame: Frame) -> None:
        # Draw pixels (monochrome)
        surf = self.surface
        surf.fill(BACKGROUND)
        pixel_size = self.scale
        for y in range(SCREEN_H):
            for x in range(SCREEN_W):
                if frame[y * SCREEN_W + x]:
                    rect = pygame.Rect(x * pixel_size, y *
                                       pixel_size, pixel_size, pixel_size)
                    pygame.draw.rect(surf, FOREGROUND, rect)
        if surf is pygame.display.get_surface():
            pygame.display.flip()

    def update_sound(self):
        if self.sound is None:
            return
        wanted = self.chip8.should_play_sound()
        if wanted and not self.beeping:
            self.sound.play(loops=-1)
        elif not wanted and self.beeping:
            self.sound.stop()
        self.beeping = wanted

    def tick(self, hz: int):
        self.clock.tick(hz)
