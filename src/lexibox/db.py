"""Database initialization and connection management."""
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from lexibox.config import get_settings

DEFAULT_DB_PATH = get_settings().db_path

SCHEMA = """
CREATE TABLE IF NOT EXISTS flashcards (
    id TEXT PRIMARY KEY,
    word TEXT NOT NULL,
    source_language TEXT NOT NULL,
    target_language TEXT NOT NULL,
    definition TEXT DEFAULT '',
    short_definition TEXT DEFAULT '',
    translation TEXT DEFAULT '',
    example TEXT DEFAULT '',
    phonetics TEXT DEFAULT '',
    audio_url TEXT,
    cefr_level TEXT,
    tags TEXT DEFAULT '[]',
    box INTEGER NOT NULL DEFAULT 1 CHECK(box BETWEEN 1 AND 5),
    next_review_at TEXT NOT NULL,
    last_studied_at TEXT,
    study_count INTEGER NOT NULL DEFAULT 0,
    correct_count INTEGER NOT NULL DEFAULT 0 CHECK(correct_count <= study_count),
    mastered INTEGER NOT NULL DEFAULT 0,
    date_created TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_next_review ON flashcards(next_review_at);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT DEFAULT 'User',
    daily_goal INTEGER NOT NULL DEFAULT 10,
    streak_count INTEGER NOT NULL DEFAULT 0,
    total_points INTEGER NOT NULL DEFAULT 0,
    last_active_at TEXT,
    notifications_enabled INTEGER NOT NULL DEFAULT 1,
    date_joined TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS exam_sessions (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL,
    total_questions INTEGER NOT NULL,
    correct_answers INTEGER NOT NULL,
    incorrect_answers INTEGER NOT NULL,
    duration REAL NOT NULL DEFAULT 0
);
"""


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width ISO timestamp so TEXT comparison orders chronologically."""
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory, foreign keys and a Unicode
    ``casefold()`` SQL function (the built-in ``lower()`` only folds ASCII).
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
