from __future__ import annotations

import logging
import os
import sqlite3
import time
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

from .results import ModalSummary, SessionSummary

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
HISTORY_DB_ENV = "NBACK_HISTORY_PATH"

# Both channel accuracies must reach this to raise the best level.
HIGH_SCORE_ACCURACY_PCT = 80


@dataclass(frozen=True, slots=True)
class GameStats:
    sessions: tuple[SessionSummary, ...] = ()
    high_score_n: int = 1
    streak: int = 0
    last_played_date: str | None = None  # ISO date, UTC


def default_db_path() -> Path:
    explicit = os.environ.get(HISTORY_DB_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".nback_trainer_history.sqlite3"


def open_db(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_today_iso() -> str:
    return time.strftime("%Y-%m-%d", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                session_key TEXT NOT NULL,
                timestamp_ms INTEGER NOT NULL,
                n_level INTEGER NOT NULL,
                score INTEGER NOT NULL,
                accuracy_position INTEGER NOT NULL,
                accuracy_audio INTEGER NOT NULL,
                total_mistakes INTEGER NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS modal_stats (
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                channel TEXT NOT NULL,
                hits INTEGER NOT NULL,
                misses INTEGER NOT NULL,
                false_alarms INTEGER NOT NULL,
                correct_rejections INTEGER NOT NULL,
                avg_response_time_ms INTEGER NOT NULL,
                PRIMARY KEY (session_id, channel)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS profile (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                high_score_n INTEGER NOT NULL,
                streak INTEGER NOT NULL,
                last_played_date TEXT
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_session_timestamp ON session(timestamp_ms);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def next_streak(*, streak: int, last_played_date: str | None, today: str) -> int:
    """Same day keeps the streak, consecutive day extends it, any gap restarts at 1."""

    if last_played_date == today:
        return int(streak)
    yesterday = (date.fromisoformat(today) - timedelta(days=1)).isoformat()
    if last_played_date == yesterday:
        return int(streak) + 1
    return 1


def next_high_score(*, high_score_n: int, summary: SessionSummary) -> int:
    passed = (
        summary.accuracy_position >= HIGH_SCORE_ACCURACY_PCT
        and summary.accuracy_audio >= HIGH_SCORE_ACCURACY_PCT
    )
    if passed and summary.n_level > high_score_n:
        return int(summary.n_level)
    return int(high_score_n)


def merge_session(stats: GameStats, summary: SessionSummary, *, today: str) -> GameStats:
    return GameStats(
        sessions=(*stats.sessions, summary),
        high_score_n=next_high_score(high_score_n=stats.high_score_n, summary=summary),
        streak=next_streak(streak=stats.streak, last_played_date=stats.last_played_date, today=today),
        last_played_date=today,
    )


def load_stats(*, db_path: Path) -> GameStats:
    conn = open_db(db_path)
    try:
        return _read_stats(conn)
    finally:
        conn.close()


def record_session(*, db_path: Path, summary: SessionSummary, today: str | None = None) -> GameStats:
    """
    Append a finished session and update streak / best level:
      session + modal_stats (x2) + profile
    """
    day = _utc_today_iso() if today is None else str(today)
    conn = open_db(db_path)
    try:
        merged = merge_session(_read_stats(conn), summary, today=day)
        _insert_session(conn=conn, summary=summary, stats=merged)
        return merged
    finally:
        conn.close()


def persist_session(*, db_path: Path, summary: SessionSummary, today: str | None = None) -> GameStats | None:
    """Failure-tolerant wrapper for the live game: logs and returns None on error."""

    try:
        return record_session(db_path=db_path, summary=summary, today=today)
    except (sqlite3.Error, OSError, ValueError):
        logger.exception("Failed to save session %s to %s", summary.id, db_path)
        return None


def _read_stats(conn: sqlite3.Connection) -> GameStats:
    profile = conn.execute(
        "SELECT high_score_n, streak, last_played_date FROM profile WHERE id = 1"
    ).fetchone()

    modal: dict[tuple[int, str], ModalSummary] = {}
    for row in conn.execute(
        """
        SELECT session_id, channel, hits, misses, false_alarms, correct_rejections, avg_response_time_ms
        FROM modal_stats
        """
    ):
        modal[(int(row[0]), str(row[1]))] = ModalSummary(
            hits=int(row[2]),
            misses=int(row[3]),
            false_alarms=int(row[4]),
            correct_rejections=int(row[5]),
            avg_response_time_ms=int(row[6]),
        )

    empty = ModalSummary(hits=0, misses=0, false_alarms=0, correct_rejections=0, avg_response_time_ms=0)
    sessions: list[SessionSummary] = []
    for row in conn.execute(
        """
        SELECT id, session_key, timestamp_ms, n_level, score,
               accuracy_position, accuracy_audio, total_mistakes
        FROM session ORDER BY timestamp_ms, id
        """
    ):
        row_id = int(row[0])
        sessions.append(
            SessionSummary(
                id=str(row[1]),
                timestamp=int(row[2]),
                n_level=int(row[3]),
                score=int(row[4]),
                accuracy_position=int(row[5]),
                accuracy_audio=int(row[6]),
                total_mistakes=int(row[7]),
                visual_stats=modal.get((row_id, "position"), empty),
                audio_stats=modal.get((row_id, "audio"), empty),
            )
        )

    if profile is None:
        return GameStats(sessions=tuple(sessions))
    return GameStats(
        sessions=tuple(sessions),
        high_score_n=int(profile[0]),
        streak=int(profile[1]),
        last_played_date=None if profile[2] is None else str(profile[2]),
    )


def _insert_session(*, conn: sqlite3.Connection, summary: SessionSummary, stats: GameStats) -> None:
    with conn:
        cur = conn.execute(
            """
            INSERT INTO session(
                session_key, timestamp_ms, n_level, score,
                accuracy_position, accuracy_audio, total_mistakes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(summary.id),
                int(summary.timestamp),
                int(summary.n_level),
                int(summary.score),
                int(summary.accuracy_position),
                int(summary.accuracy_audio),
                int(summary.total_mistakes),
            ),
        )
        session_id = int(cur.lastrowid)

        for channel, m in (("position", summary.visual_stats), ("audio", summary.audio_stats)):
            conn.execute(
                """
                INSERT INTO modal_stats(
                    session_id, channel, hits, misses, false_alarms,
                    correct_rejections, avg_response_time_ms
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    channel,
                    int(m.hits),
                    int(m.misses),
                    int(m.false_alarms),
                    int(m.correct_rejections),
                    int(m.avg_response_time_ms),
                ),
            )

        conn.execute(
            """
            INSERT INTO profile(id, high_score_n, streak, last_played_date)
            VALUES (1, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                high_score_n = excluded.high_score_n,
                streak = excluded.streak,
                last_played_date = excluded.last_played_date
            """,
            (int(stats.high_score_n), int(stats.streak), stats.last_played_date),
        )
