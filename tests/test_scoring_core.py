from __future__ import annotations

import pytest

from nback_trainer.nback_core import Channel, Outcome, TrialStep
from nback_trainer.scoring import (
    ModalStats,
    ScorerState,
    UserInput,
    acknowledge,
    apply_outcome,
    apply_score,
    classify,
    score_step,
)


@pytest.mark.parametrize(
    ("is_match", "acked", "expected"),
    [
        (True, True, Outcome.HIT),
        (True, False, Outcome.MISS),
        (False, True, Outcome.FALSE_ALARM),
        (False, False, Outcome.CORRECT_REJECTION),
    ],
)
def test_classify_signal_detection_table(is_match: bool, acked: bool, expected: Outcome) -> None:
    assert classify(is_match=is_match, acked=acked) is expected


def test_acknowledge_first_press_wins() -> None:
    ui = acknowledge(UserInput(), Channel.POSITION, latency_ms=320)
    again = acknowledge(ui, Channel.POSITION, latency_ms=900)

    assert again is ui
    assert again.position_acked is True
    assert again.position_latency_ms == 320
    assert again.audio_acked is False
    assert again.audio_latency_ms is None


def test_acknowledge_channels_are_independent() -> None:
    ui = acknowledge(UserInput(), Channel.AUDIO, latency_ms=150)
    ui = acknowledge(ui, Channel.POSITION, latency_ms=400)

    assert ui.acked(Channel.AUDIO) and ui.latency_ms(Channel.AUDIO) == 150
    assert ui.acked(Channel.POSITION) and ui.latency_ms(Channel.POSITION) == 400


def test_hits_accumulate_response_time() -> None:
    stats = ModalStats()
    stats = apply_outcome(stats, Outcome.HIT, latency_ms=250)
    stats = apply_outcome(stats, Outcome.HIT, latency_ms=350)
    stats = apply_outcome(stats, Outcome.MISS)
    stats = apply_outcome(stats, Outcome.FALSE_ALARM, latency_ms=999)
    stats = apply_outcome(stats, Outcome.CORRECT_REJECTION)

    assert (stats.hits, stats.misses, stats.false_alarms, stats.correct_rejections) == (2, 1, 1, 1)
    assert stats.total_response_time_ms == 600
    assert stats.hit_count == 2
    assert stats.resolved == 5
    assert stats.mistakes == 2


def test_score_never_goes_negative() -> None:
    score = 0
    for _ in range(10):
        score = apply_score(score, Outcome.FALSE_ALARM)
    assert score == 0

    assert apply_score(30, Outcome.FALSE_ALARM) == 0
    assert apply_score(120, Outcome.FALSE_ALARM) == 70
    assert apply_score(0, Outcome.HIT) == 100
    assert apply_score(40, Outcome.MISS) == 40


def test_score_step_resolves_position_before_audio() -> None:
    step = TrialStep(position=1, token="C", is_position_match=True, is_audio_match=False)
    both = UserInput(position_acked=True, audio_acked=True, position_latency_ms=200, audio_latency_ms=300)

    state = score_step(ScorerState(), step, both)
    # +100 for the position hit, then -50 for the audio false alarm.
    assert state.score == 50
    assert state.visual.hits == 1
    assert state.visual.total_response_time_ms == 200
    assert state.audio.false_alarms == 1
    assert state.audio.hit_count == 0

    flipped = TrialStep(position=1, token="C", is_position_match=False, is_audio_match=True)
    state = score_step(ScorerState(), flipped, both)
    # Penalty is floored at 0 before the audio hit lands.
    assert state.score == 100
    assert state.visual.false_alarms == 1
    assert state.audio.hits == 1


def test_score_step_without_input() -> None:
    step = TrialStep(position=5, token="K", is_position_match=True, is_audio_match=False)
    state = score_step(ScorerState(score=200), step, UserInput())

    assert state.score == 200
    assert state.visual.misses == 1
    assert state.audio.correct_rejections == 1
    assert state.stats_for(Channel.POSITION) is state.visual
    assert state.stats_for(Channel.AUDIO) is state.audio
