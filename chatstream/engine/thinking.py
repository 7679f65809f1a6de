from __future__ import annotations

import math
import time
from typing import Callable


class ThinkingClock:
    """
    Cumulative "thinking time" across the periods of one session.

    A period opens on ephemeral text or a tool start and closes on persistent
    text or at finalization. Each closed period adds its floored length in
    seconds; gaps between periods are not counted.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.accumulated_seconds = 0
        self.period_start: float | None = None

    @property
    def is_thinking(self) -> bool:
        return self.period_start is not None

    def open(self) -> bool:
        """Start a period unless one is already open. Returns True if opened."""
        if self.period_start is not None:
            return False
        self.period_start = self._clock()
        return True

    def close(self) -> int:
        """Close the open period, if any. Returns the seconds it added."""
        if self.period_start is None:
            return 0
        added = self._open_seconds()
        self.accumulated_seconds += added
        self.period_start = None
        return added

    def _open_seconds(self) -> int:
        if self.period_start is None:
            return 0
        return max(0, math.floor(self._clock() - self.period_start))

    def elapsed(self) -> int:
        """Live readout: accumulated seconds plus the open period so far."""
        return self.accumulated_seconds + self._open_seconds()

    def final_seconds(self) -> int:
        return self.elapsed()

    def reset(self) -> None:
        self.accumulated_seconds = 0
        self.period_start = None
