from __future__ import annotations

import math
import random
from dataclasses import dataclass
from enum import StrEnum
from typing import Sequence

# 3x3 grid, cells numbered row-major.
GRID_SIZE = 9
LETTERS: tuple[str, ...] = ("C", "H", "K", "L", "Q", "R", "S", "T")

HIT_POINTS = 100
FALSE_ALARM_PENALTY = 50
WARMUP_MS = 500.0
DEFAULT_MATCH_CHANCE = 0.3


class InvalidConfigError(ValueError):
    """Raised when a session configuration cannot produce a valid sequence."""


class Channel(StrEnum):
    POSITION = "position"
    AUDIO = "audio"


class GameState(StrEnum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class Outcome(StrEnum):
    HIT = "hit"
    MISS = "miss"
    FALSE_ALARM = "false_alarm"
    CORRECT_REJECTION = "correct_rejection"


@dataclass(frozen=True, slots=True)
class NBackConfig:
    n_level: int
    total_trials: int
    match_chance: float = DEFAULT_MATCH_CHANCE
    step_duration_ms: float = 2500.0

    def __post_init__(self) -> None:
        if int(self.n_level) < 1:
            raise InvalidConfigError("n_level must be >= 1")
        if int(self.total_trials) <= int(self.n_level):
            raise InvalidConfigError("total_trials must be > n_level")
        if not (0.0 <= float(self.match_chance) <= 1.0):
            raise InvalidConfigError("match_chance must be in [0.0, 1.0]")
        if float(self.step_duration_ms) <= 0.0:
            raise InvalidConfigError("step_duration_ms must be > 0")


@dataclass(frozen=True, slots=True)
class TrialStep:
    position: int  # 0..GRID_SIZE-1
    token: str
    is_position_match: bool
    is_audio_match: bool

    def is_match(self, channel: Channel) -> bool:
        if channel is Channel.POSITION:
            return self.is_position_match
        return self.is_audio_match


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randrange(self, stop: int) -> int:
        return self._rng.randrange(int(stop))

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq: Sequence[str]) -> str:
        return self._rng.choice(seq)


def round_half_up(x: float) -> int:
    # Matches browser-style Math.round for the non-negative values used here.
    return int(math.floor(x + 0.5))
