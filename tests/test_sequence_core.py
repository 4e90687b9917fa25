from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest

from nback_trainer.nback_core import GRID_SIZE, LETTERS, InvalidConfigError, NBackConfig, SeededRng
from nback_trainer.sequence import DualNBackSequenceGenerator, count_matches, generate_sequence


@dataclass
class ScriptedRng:
    positions: list[int]
    tokens: list[str]
    draws: list[float] = field(default_factory=list)

    def randrange(self, stop: int) -> int:
        return self.positions.pop(0)

    def random(self) -> float:
        return self.draws.pop(0)

    def choice(self, seq: object) -> str:
        return self.tokens.pop(0)


def test_generator_determinism_same_seed_same_sequence() -> None:
    cfg = NBackConfig(n_level=2, total_trials=30, match_chance=0.3)
    g1 = DualNBackSequenceGenerator(seed=909)
    g2 = DualNBackSequenceGenerator(seed=909)

    assert g1.generate(cfg) == g2.generate(cfg)
    assert g1.generate(cfg) == g2.generate(cfg)


@pytest.mark.parametrize("n_level", [1, 2, 3, 5])
@pytest.mark.parametrize("match_chance", [0.0, 0.3, 0.7, 1.0])
def test_match_flags_agree_with_lag_values(n_level: int, match_chance: float) -> None:
    cfg = NBackConfig(n_level=n_level, total_trials=40, match_chance=match_chance)
    for seed in range(25):
        seq = generate_sequence(cfg, rng=SeededRng(seed))
        assert len(seq) == 40
        for i, step in enumerate(seq):
            assert 0 <= step.position < GRID_SIZE
            assert step.token in LETTERS
            if i < n_level:
                assert step.is_position_match is False
                assert step.is_audio_match is False
            else:
                lag = seq[i - n_level]
                assert step.is_position_match == (step.position == lag.position)
                assert step.is_audio_match == (step.token == lag.token)


def test_full_match_chance_forces_every_eligible_step() -> None:
    cfg = NBackConfig(n_level=2, total_trials=10, match_chance=1.0)
    seq = generate_sequence(cfg, rng=SeededRng(3))

    for i in range(2, 10):
        assert seq[i].is_position_match
        assert seq[i].is_audio_match
        assert seq[i].position == seq[i - 2].position
        assert seq[i].token == seq[i - 2].token
    assert count_matches(seq) == (8, 8)


def test_zero_match_chance_only_flags_chance_collisions() -> None:
    cfg = NBackConfig(n_level=2, total_trials=50, match_chance=0.0)
    eligible = 0
    pos_matches = 0
    aud_matches = 0
    for seed in range(200):
        seq = generate_sequence(cfg, rng=SeededRng(seed))
        eligible += len(seq) - 2
        pos, aud = count_matches(seq)
        pos_matches += pos
        aud_matches += aud

    # Expected collision rates are 1/9 and 1/8.
    assert 0.08 < pos_matches / eligible < 0.14
    assert 0.095 < aud_matches / eligible < 0.155


def test_accidental_repeat_is_flagged_without_forced_draw() -> None:
    cfg = NBackConfig(n_level=1, total_trials=2, match_chance=0.3)
    rng = ScriptedRng(positions=[4, 4], tokens=["C", "H"], draws=[0.9, 0.9])

    seq = generate_sequence(cfg, rng=rng)

    assert seq[1].position == 4
    assert seq[1].is_position_match is True
    assert seq[1].token == "H"
    assert seq[1].is_audio_match is False


def test_forced_draws_are_independent_per_channel() -> None:
    cfg = NBackConfig(n_level=1, total_trials=2, match_chance=0.5)
    # Position draw forces a match, audio draw does not.
    rng = ScriptedRng(positions=[0, 7], tokens=["C", "T"], draws=[0.1, 0.9])

    seq = generate_sequence(cfg, rng=rng)

    assert seq[1].position == 0
    assert seq[1].is_position_match is True
    assert seq[1].token == "T"
    assert seq[1].is_audio_match is False


def test_config_validation() -> None:
    with pytest.raises(InvalidConfigError):
        NBackConfig(n_level=3, total_trials=3)
    with pytest.raises(InvalidConfigError):
        NBackConfig(n_level=0, total_trials=10)
    with pytest.raises(InvalidConfigError):
        NBackConfig(n_level=2, total_trials=10, match_chance=1.5)
    with pytest.raises(InvalidConfigError):
        NBackConfig(n_level=2, total_trials=10, step_duration_ms=0.0)


def test_generator_fails_fast_without_lag_target() -> None:
    bad = SimpleNamespace(n_level=4, total_trials=4, match_chance=0.3, step_duration_ms=1000.0)
    with pytest.raises(InvalidConfigError):
        generate_sequence(bad, rng=SeededRng(1))  # type: ignore[arg-type]
