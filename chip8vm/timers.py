"""60 Hz clock for the delay and sound timers."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

TIMER_HZ = 60


@dataclass
class TimerClock:
    period: float = 1.0 / TIMER_HZ
    clock: Callable[[], float] = time.perf_counter
    last_tick: float = field(init=False)

    def __post_init__(self):
        self.last_tick = self.clock()

    def due(self) -> bool:
        """True once per elapsed period; restarts the period when it fires."""
        now = self.clock()
        if now - self.last_tick >= self.period:
            self.last_tick = now
            return True
        return False

    def reset(self):
        self.last_tick = self.clock()
