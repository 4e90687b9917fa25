from __future__ import annotations

from nback_trainer.nback_core import NBackConfig
from nback_trainer.results import accuracy_percent, average_response_time_ms, finalize
from nback_trainer.scoring import ModalStats


def test_average_response_time_over_hits_only() -> None:
    assert average_response_time_ms(ModalStats(hits=3, total_response_time_ms=900, hit_count=3)) == 300
    assert average_response_time_ms(ModalStats(misses=4, false_alarms=2)) == 0
    # 1001 / 2 = 500.5 rounds half up.
    assert average_response_time_ms(ModalStats(hits=2, total_response_time_ms=1001, hit_count=2)) == 501


def test_accuracy_counts_hits_and_correct_rejections() -> None:
    stats = ModalStats(hits=1, misses=1, false_alarms=0, correct_rejections=1)
    assert accuracy_percent(stats, total_trials=3) == 67
    assert accuracy_percent(ModalStats(hits=1, misses=7), total_trials=8) == 13
    assert accuracy_percent(ModalStats(), total_trials=0) == 0


def test_finalize_builds_summary() -> None:
    cfg = NBackConfig(n_level=3, total_trials=10, match_chance=0.3, step_duration_ms=2000.0)
    visual = ModalStats(hits=3, misses=1, false_alarms=2, correct_rejections=4, total_response_time_ms=900, hit_count=3)
    audio = ModalStats(hits=2, misses=2, false_alarms=0, correct_rejections=6, total_response_time_ms=1100, hit_count=2)

    summary = finalize(visual, audio, 350, cfg, timestamp_ms=1_700_000_000_123)

    assert summary.id == "1700000000123"
    assert summary.timestamp == 1_700_000_000_123
    assert summary.n_level == 3
    assert summary.score == 350
    assert summary.accuracy_position == 70
    assert summary.accuracy_audio == 80
    assert summary.total_mistakes == 5
    assert summary.visual_stats.avg_response_time_ms == 300
    assert summary.audio_stats.avg_response_time_ms == 550
    assert summary.visual_stats.false_alarms == 2
    assert summary.audio_stats.correct_rejections == 6


def test_finalize_stamps_current_time_by_default() -> None:
    cfg = NBackConfig(n_level=1, total_trials=10)
    summary = finalize(ModalStats(), ModalStats(), 0, cfg)
    assert summary.timestamp > 0
    assert summary.id == str(summary.timestamp)
