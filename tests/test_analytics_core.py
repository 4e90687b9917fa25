from __future__ import annotations

from nback_trainer.analytics import average_score, overview, response_time_trend
from nback_trainer.persistence import GameStats
from nback_trainer.results import ModalSummary, SessionSummary


def _session(i: int, score: int) -> SessionSummary:
    return SessionSummary(
        id=str(i),
        timestamp=i,
        n_level=2,
        score=score,
        accuracy_position=70,
        accuracy_audio=70,
        total_mistakes=2,
        visual_stats=ModalSummary(hits=1, misses=1, false_alarms=0, correct_rejections=8, avg_response_time_ms=100 + i),
        audio_stats=ModalSummary(hits=1, misses=0, false_alarms=1, correct_rejections=8, avg_response_time_ms=200 + i),
    )


def test_average_score_rounds_half_up() -> None:
    assert average_score(()) == 0
    assert average_score((_session(1, 100), _session(2, 51))) == 76


def test_trend_keeps_last_ten_sessions() -> None:
    sessions = tuple(_session(i, 100) for i in range(14))
    trend = response_time_trend(sessions)

    assert len(trend) == 10
    assert trend[0].index == 1
    assert trend[0].visual_ms == 104
    assert trend[-1].audio_ms == 213


def test_overview_empty_and_filled() -> None:
    empty = overview(GameStats())
    assert empty.sessions_played == 0
    assert empty.last_session is None
    assert empty.response_time_trend == ()
    assert empty.high_score_n == 1

    stats = GameStats(sessions=(_session(1, 300), _session(2, 500)), high_score_n=3, streak=4, last_played_date="2024-01-02")
    ov = overview(stats)
    assert ov.sessions_played == 2
    assert ov.average_score == 400
    assert ov.last_session is not None and ov.last_session.score == 500
    assert ov.streak == 4
