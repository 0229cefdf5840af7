import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional

from db_pool import SQLiteConnectionPool

DB_PATH = os.getenv("DB_PATH", "data.db")

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=10)

SAMPLE_WORDS: tuple[Dict[str, str], ...] = (
    {"english": "apple", "japanese": "りんご", "level": "basic"},
    {"english": "book", "japanese": "本", "level": "basic"},
    {"english": "water", "japanese": "水", "level": "basic"},
    {"english": "friend", "japanese": "友達", "level": "basic"},
    {"english": "school", "japanese": "学校", "level": "basic"},
    {"english": "journey", "japanese": "旅", "level": "intermediate"},
    {"english": "opinion", "japanese": "意見", "level": "intermediate"},
    {"english": "schedule", "japanese": "予定", "level": "intermediate"},
    {"english": "ambiguous", "japanese": "曖昧な", "level": "advanced"},
    {"english": "consequence", "japanese": "結果", "level": "advanced"},
)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur

def _query(sql: str, params: Iterable = (), con: Optional[sqlite3.Connection] = None) -> list[sqlite3.Row]:
    if con is not None:
        return con.execute(sql, params).fetchall()
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


@contextmanager
def read_transaction() -> Iterator[sqlite3.Connection]:
    """Borrow one connection holding a read transaction.

    Every query passed the yielded connection sees the same snapshot of the
    database, so appends committed meanwhile stay invisible until it ends.
    """
    with _pool.get_connection() as con:
        con.execute("BEGIN")
        try:
            yield con
        finally:
            con.rollback()


def format_timestamp(value: Optional[datetime] = None) -> str:
    """Render ``value`` as a sortable UTC timestamp string.

    Naive datetimes are taken to be UTC. Every row in ``study_records`` uses
    this format so that ``ORDER BY timestamp`` is chronological.
    """
    if value is None:
        value = datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA foreign_keys = ON;
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS users (
              id          TEXT PRIMARY KEY,
              pw_hash     TEXT NOT NULL,
              pw_salt     TEXT,
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS words (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              english     TEXT NOT NULL,
              japanese    TEXT NOT NULL,
              level       TEXT DEFAULT 'basic',
              created_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS study_records (
              id             INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id        TEXT NOT NULL,
              word_id        INTEGER NOT NULL,
              is_correct     INTEGER NOT NULL CHECK (is_correct IN (0, 1)),
              timestamp      TEXT NOT NULL,
              submission_id  TEXT,
              FOREIGN KEY (user_id) REFERENCES users (id),
              FOREIGN KEY (word_id) REFERENCES words (id)
            );

            CREATE INDEX IF NOT EXISTS idx_study_records_user_ts
              ON study_records(user_id, timestamp, id);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_study_records_submission
              ON study_records(user_id, submission_id)
              WHERE submission_id IS NOT NULL;
            """
        )
        con.commit()

        count = con.execute("SELECT COUNT(*) AS n FROM words").fetchone()["n"]
        if count == 0:
            con.executemany(
                "INSERT INTO words(english, japanese, level) VALUES (?,?,?)",
                [(w["english"], w["japanese"], w["level"]) for w in SAMPLE_WORDS],
            )
            con.commit()


# -------------- users --------------
def get_user_auth(user_id: str) -> Optional[sqlite3.Row]:
    rows = _query("SELECT id, pw_hash, pw_salt FROM users WHERE id = ?", (user_id,))
    return rows[0] if rows else None

def create_user(user_id: str, pw_hash: str, pw_salt: Optional[str] = None):
    _exec(
        "INSERT INTO users(id, pw_hash, pw_salt) VALUES (?,?,?)",
        (user_id, pw_hash, pw_salt),
    )


def get_user_profile(user_id: str) -> Optional[Dict[str, Any]]:
    rows = _query("SELECT id, created_at FROM users WHERE id = ?", (user_id,))
    return dict(rows[0]) if rows else None

# -------------- words --------------
def list_words(level: Optional[str] = None, limit: int = 50, offset: int = 0) -> list[Dict[str, Any]]:
    if level:
        rows = _query(
            "SELECT id, english, japanese, level FROM words WHERE level = ? ORDER BY id LIMIT ? OFFSET ?",
            (level, int(limit), int(offset)),
        )
    else:
        rows = _query(
            "SELECT id, english, japanese, level FROM words ORDER BY id LIMIT ? OFFSET ?",
            (int(limit), int(offset)),
        )
    return [dict(row) for row in rows]


def get_word(word_id: int) -> Optional[Dict[str, Any]]:
    rows = _query("SELECT id, english, japanese, level FROM words WHERE id = ?", (int(word_id),))
    return dict(rows[0]) if rows else None


def word_level_counts() -> list[Dict[str, Any]]:
    """Number of words per level, basic first."""
    rows = _query(
        """
        SELECT level, COUNT(*) AS count
        FROM words
        GROUP BY level
        ORDER BY CASE level
                   WHEN 'basic' THEN 1
                   WHEN 'intermediate' THEN 2
                   WHEN 'advanced' THEN 3
                   ELSE 4
                 END, level
        """
    )
    return [dict(row) for row in rows]


def word_exists(word_id: int) -> bool:
    return bool(_query("SELECT 1 FROM words WHERE id = ?", (int(word_id),)))


# -------------- outcome log --------------
def append_outcome(
    user_id: str,
    word_id: int,
    is_correct: bool,
    timestamp: Optional[datetime] = None,
    submission_id: Optional[str] = None,
) -> Optional[int]:
    """Append one immutable outcome record.

    Returns the new row id, or ``None`` when ``submission_id`` was already
    recorded for this user (a replayed offline submission).
    """
    cur = _exec(
        """
        INSERT OR IGNORE INTO study_records(user_id, word_id, is_correct, timestamp, submission_id)
        VALUES (?,?,?,?,?)
        """,
        (user_id, int(word_id), 1 if is_correct else 0, format_timestamp(timestamp), submission_id),
    )
    if cur.rowcount == 0:
        return None
    return cur.lastrowid


def fetch_recent_outcomes(user_id: str, limit: int, con: Optional[sqlite3.Connection] = None) -> list[bool]:
    """Return up to ``limit`` outcomes, newest first."""
    rows = _query(
        """
        SELECT is_correct FROM study_records
        WHERE user_id = ?
        ORDER BY timestamp DESC, id DESC
        LIMIT ?
        """,
        (user_id, int(limit)),
        con,
    )
    return [bool(row["is_correct"]) for row in rows]


_ITER_OUTCOMES_SQL = """
    SELECT is_correct FROM study_records
    WHERE user_id = ?
    ORDER BY timestamp ASC, id ASC
"""


def iter_outcomes(user_id: str, con: Optional[sqlite3.Connection] = None) -> Iterator[bool]:
    """Yield every outcome for ``user_id`` oldest first without materialising the log."""
    if con is not None:
        for row in con.execute(_ITER_OUTCOMES_SQL, (user_id,)):
            yield bool(row["is_correct"])
        return
    with _conn() as pooled:
        for row in pooled.execute(_ITER_OUTCOMES_SQL, (user_id,)):
            yield bool(row["is_correct"])


def count_outcomes(user_id: str, con: Optional[sqlite3.Connection] = None) -> Dict[str, int]:
    rows = _query(
        """
        SELECT COUNT(*) AS total,
               COALESCE(SUM(CASE WHEN is_correct = 1 THEN 1 ELSE 0 END), 0) AS correct
        FROM study_records WHERE user_id = ?
        """,
        (user_id,),
        con,
    )
    total = int(rows[0]["total"])
    correct = int(rows[0]["correct"])
    return {"total": total, "correct": correct, "incorrect": total - correct}


def daily_outcome_counts(user_id: str, days: int, today: Optional[date] = None) -> list[Dict[str, Any]]:
    """Per-day counts for the trailing ``days`` window, oldest first, zero-filled."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    start = today - timedelta(days=days - 1)
    end = today + timedelta(days=1)
    rows = _query(
        """
        SELECT substr(timestamp, 1, 10) AS day,
               COUNT(*) AS total,
               SUM(CASE WHEN is_correct = 1 THEN 1 ELSE 0 END) AS correct
        FROM study_records
        WHERE user_id = ? AND timestamp >= ? AND timestamp < ?
        GROUP BY day
        """,
        (user_id, start.isoformat(), end.isoformat()),
    )
    by_day = {row["day"]: (int(row["total"]), int(row["correct"])) for row in rows}

    result = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        total, correct = by_day.get(day, (0, 0))
        result.append(
            {
                "date": day,
                "total_studied": total,
                "correct_answers": correct,
                "incorrect_answers": total - correct,
            }
        )
    return result


def list_history(user_id: str, limit: int = 50, offset: int = 0) -> list[Dict[str, Any]]:
    rows = _query(
        """
        SELECT sr.id, sr.word_id, sr.is_correct, sr.timestamp,
               w.english, w.japanese, w.level
        FROM study_records sr
        JOIN words w ON sr.word_id = w.id
        WHERE sr.user_id = ?
        ORDER BY sr.timestamp DESC, sr.id DESC
        LIMIT ? OFFSET ?
        """,
        (user_id, int(limit), int(offset)),
    )
    history = []
    for row in rows:
        entry = dict(row)
        entry["is_correct"] = bool(entry["is_correct"])
        history.append(entry)
    return history


def list_difficult_words(user_id: str, limit: int = 20, min_attempts: int = 3) -> list[Dict[str, Any]]:
    rows = _query(
        """
        SELECT w.id, w.english, w.japanese, w.level,
               COUNT(*) AS attempt_count,
               SUM(CASE WHEN sr.is_correct = 1 THEN 1 ELSE 0 END) AS correct_count,
               ROUND(SUM(CASE WHEN sr.is_correct = 1 THEN 1 ELSE 0 END) * 100.0 / COUNT(*), 2)
                 AS accuracy_rate
        FROM words w
        JOIN study_records sr ON w.id = sr.word_id
        WHERE sr.user_id = ?
        GROUP BY w.id
        HAVING attempt_count >= ?
        ORDER BY accuracy_rate ASC, attempt_count DESC
        LIMIT ?
        """,
        (user_id, int(min_attempts), int(limit)),
    )
    return [dict(row) for row in rows]
