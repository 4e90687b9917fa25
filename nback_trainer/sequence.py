from __future__ import annotations

from typing import Protocol, Sequence

from .nback_core import (
    GRID_SIZE,
    LETTERS,
    InvalidConfigError,
    NBackConfig,
    SeededRng,
    TrialStep,
)


class SequenceRng(Protocol):
    def randrange(self, stop: int) -> int: ...
    def random(self) -> float: ...
    def choice(self, seq: Sequence[str]) -> str: ...


def generate_sequence(
    config: NBackConfig,
    *,
    rng: SequenceRng,
    grid_size: int = GRID_SIZE,
    letters: Sequence[str] = LETTERS,
) -> list[TrialStep]:
    """Build the full trial sequence for one session.

    Every lag-eligible index (``i >= n_level``) gets two independent draws
    against ``match_chance``: one forcing the position to repeat the value
    ``n_level`` steps back, one doing the same for the letter.

    Known quirk: after the forced draws, a value that happens to equal its
    lag target is also flagged as a match. The real match rate is therefore
    ``match_chance + (1 - match_chance) / grid_size`` for position (collision
    chance 1/9 on the default grid) and
    ``match_chance + (1 - match_chance) / len(letters)`` for audio (1/8 with
    the default letters). History and scoring rely on this, so it is kept.
    """

    n = int(config.n_level)
    total = int(config.total_trials)
    if total <= n:
        raise InvalidConfigError("total_trials must be > n_level")
    if grid_size < 1 or not letters:
        raise InvalidConfigError("grid and letter alphabet must be non-empty")

    chance = float(config.match_chance)
    steps: list[TrialStep] = []
    for i in range(total):
        position = int(rng.randrange(grid_size))
        token = str(rng.choice(letters))
        is_position_match = False
        is_audio_match = False

        if i >= n:
            target = steps[i - n]
            if rng.random() < chance:
                position = target.position
                is_position_match = True
            if rng.random() < chance:
                token = target.token
                is_audio_match = True

            # Accidental repeats count as matches too.
            if not is_position_match and position == target.position:
                is_position_match = True
            if not is_audio_match and token == target.token:
                is_audio_match = True

        steps.append(
            TrialStep(
                position=position,
                token=token,
                is_position_match=is_position_match,
                is_audio_match=is_audio_match,
            )
        )
    return steps


def count_matches(sequence: Sequence[TrialStep]) -> tuple[int, int]:
    """Return (position_matches, audio_matches) present in a sequence."""

    pos = sum(1 for step in sequence if step.is_position_match)
    aud = sum(1 for step in sequence if step.is_audio_match)
    return pos, aud


class DualNBackSequenceGenerator:
    """Deterministic sequence source: one seeded stream per generator."""

    def __init__(self, *, seed: int) -> None:
        self._seed = int(seed)
        self._rng = SeededRng(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def generate(self, config: NBackConfig) -> list[TrialStep]:
        return generate_sequence(config, rng=self._rng)
