from __future__ import annotations

import time
from dataclasses import dataclass

from .nback_core import NBackConfig, round_half_up
from .scoring import ModalStats


@dataclass(frozen=True, slots=True)
class ModalSummary:
    """Per-channel breakdown as stored in history."""

    hits: int
    misses: int
    false_alarms: int
    correct_rejections: int
    avg_response_time_ms: int


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Persistable result of one finished session.

    Accuracies are whole percentages over all trials of the session.
    """

    id: str
    timestamp: int  # epoch milliseconds
    n_level: int
    score: int
    accuracy_position: int
    accuracy_audio: int
    total_mistakes: int
    visual_stats: ModalSummary
    audio_stats: ModalSummary


def average_response_time_ms(stats: ModalStats) -> int:
    if stats.hit_count <= 0:
        return 0
    return round_half_up(stats.total_response_time_ms / stats.hit_count)


def accuracy_percent(stats: ModalStats, *, total_trials: int) -> int:
    if total_trials <= 0:
        return 0
    return round_half_up(100.0 * (stats.hits + stats.correct_rejections) / float(total_trials))


def modal_summary(stats: ModalStats) -> ModalSummary:
    return ModalSummary(
        hits=int(stats.hits),
        misses=int(stats.misses),
        false_alarms=int(stats.false_alarms),
        correct_rejections=int(stats.correct_rejections),
        avg_response_time_ms=average_response_time_ms(stats),
    )


def finalize(
    visual: ModalStats,
    audio: ModalStats,
    score: int,
    config: NBackConfig,
    *,
    timestamp_ms: int | None = None,
) -> SessionSummary:
    """Build the summary for a finished session.

    Does not store anything; the caller hands the value to persistence.
    """

    ts = int(time.time() * 1000) if timestamp_ms is None else int(timestamp_ms)
    total = int(config.total_trials)
    return SessionSummary(
        id=str(ts),
        timestamp=ts,
        n_level=int(config.n_level),
        score=int(score),
        accuracy_position=accuracy_percent(visual, total_trials=total),
        accuracy_audio=accuracy_percent(audio, total_trials=total),
        total_mistakes=int(visual.mistakes + audio.mistakes),
        visual_stats=modal_summary(visual),
        audio_stats=modal_summary(audio),
    )
