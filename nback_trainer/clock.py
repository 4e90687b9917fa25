from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    The trial engine reads step start and expiry times from this interface so
    headless runs can step time by hand.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


def elapsed_ms(start_s: float, end_s: float) -> int:
    """Whole milliseconds between two clock readings, never negative."""

    return max(0, int(round((float(end_s) - float(start_s)) * 1000.0)))
