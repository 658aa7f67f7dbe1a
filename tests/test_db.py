"""Tests for database initialization and connection management."""
from datetime import datetime

from lexibox.db import from_iso, get_connection, init_db, to_iso


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    )
    tables = {row[0] for row in cursor.fetchall()}
    assert {"flashcards", "users", "exam_sessions"}.issubset(tables)
    conn.close()


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)  # should not raise
    conn = get_connection(tmp_db)
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
    assert len(cursor.fetchall()) > 0
    conn.close()


def test_get_connection_returns_row_factory(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    conn.execute(
        "INSERT INTO exam_sessions (id, date, total_questions, correct_answers, incorrect_answers) "
        "VALUES ('x', '2024-01-01', 1, 1, 0)"
    )
    row = conn.execute("SELECT id, total_questions FROM exam_sessions").fetchone()
    assert row["id"] == "x"
    conn.close()


def test_iso_round_trip():
    value = datetime(2024, 3, 15, 10, 0, 0)
    assert to_iso(value) == "2024-03-15T10:00:00.000000"
    assert from_iso(to_iso(value)) == value
    assert to_iso(None) is None
    assert from_iso(None) is None


def test_iso_text_sorts_chronologically():
    earlier = datetime(2024, 3, 15, 9, 59, 59, 999999)
    later = datetime(2024, 3, 15, 10, 0, 0)
    assert to_iso(earlier) < to_iso(later)
