from __future__ import annotations

from dataclasses import dataclass

from .nback_core import round_half_up
from .persistence import GameStats
from .results import SessionSummary

RECENT_WINDOW = 10


@dataclass(frozen=True, slots=True)
class ResponseTimePoint:
    index: int  # 1-based within the recent window
    visual_ms: int
    audio_ms: int


@dataclass(frozen=True, slots=True)
class HistoryOverview:
    sessions_played: int
    average_score: int
    high_score_n: int
    streak: int
    last_session: SessionSummary | None
    response_time_trend: tuple[ResponseTimePoint, ...]


def average_score(sessions: tuple[SessionSummary, ...]) -> int:
    if not sessions:
        return 0
    return round_half_up(sum(s.score for s in sessions) / len(sessions))


def response_time_trend(
    sessions: tuple[SessionSummary, ...],
    *,
    window: int = RECENT_WINDOW,
) -> tuple[ResponseTimePoint, ...]:
    recent = sessions[-window:] if window > 0 else ()
    return tuple(
        ResponseTimePoint(
            index=i + 1,
            visual_ms=int(s.visual_stats.avg_response_time_ms),
            audio_ms=int(s.audio_stats.avg_response_time_ms),
        )
        for i, s in enumerate(recent)
    )


def overview(stats: GameStats) -> HistoryOverview:
    sessions = stats.sessions
    return HistoryOverview(
        sessions_played=len(sessions),
        average_score=average_score(sessions),
        high_score_n=int(stats.high_score_n),
        streak=int(stats.streak),
        last_session=sessions[-1] if sessions else None,
        response_time_trend=response_time_trend(sessions),
    )
