"""SQLite-backed record store for cards, the user and exam sessions."""
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Sequence

from loguru import logger

from lexibox.db import DEFAULT_DB_PATH, from_iso, get_connection, init_db, to_iso
from lexibox.errors import PersistenceError
from lexibox.models import CEFRLevel, ExamSession, Flashcard, User, new_user

CARD_COLUMNS = (
    "id", "word", "source_language", "target_language", "definition",
    "short_definition", "translation", "example", "phonetics", "audio_url",
    "cefr_level", "tags", "box", "next_review_at", "last_studied_at",
    "study_count", "correct_count", "mastered", "date_created",
)

USER_COLUMNS = (
    "id", "name", "daily_goal", "streak_count", "total_points",
    "last_active_at", "notifications_enabled", "date_joined",
)


def card_to_row(card: Flashcard) -> dict:
    return {
        "id": card.id,
        "word": card.word,
        "source_language": card.source_language,
        "target_language": card.target_language,
        "definition": card.definition,
        "short_definition": card.short_definition,
        "translation": card.translation,
        "example": card.example,
        "phonetics": card.phonetics,
        "audio_url": card.audio_url,
        "cefr_level": card.cefr_level.value if card.cefr_level else None,
        "tags": json.dumps(card.tags),
        "box": card.box,
        "next_review_at": to_iso(card.next_review_at),
        "last_studied_at": to_iso(card.last_studied_at),
        "study_count": card.study_count,
        "correct_count": card.correct_count,
        "mastered": int(card.mastered),
        "date_created": to_iso(card.date_created),
    }


def row_to_card(row: sqlite3.Row) -> Flashcard:
    return Flashcard(
        id=row["id"],
        word=row["word"],
        source_language=row["source_language"],
        target_language=row["target_language"],
        definition=row["definition"] or "",
        short_definition=row["short_definition"] or "",
        translation=row["translation"] or "",
        example=row["example"] or "",
        phonetics=row["phonetics"] or "",
        audio_url=row["audio_url"],
        cefr_level=CEFRLevel.parse(row["cefr_level"]),
        tags=json.loads(row["tags"] or "[]"),
        box=row["box"],
        next_review_at=from_iso(row["next_review_at"]),
        last_studied_at=from_iso(row["last_studied_at"]),
        study_count=row["study_count"],
        correct_count=row["correct_count"],
        mastered=bool(row["mastered"]),
        date_created=from_iso(row["date_created"]),
    )


def user_to_row(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "daily_goal": user.daily_goal,
        "streak_count": user.streak_count,
        "total_points": user.total_points,
        "last_active_at": to_iso(user.last_active_at),
        "notifications_enabled": int(user.notifications_enabled),
        "date_joined": to_iso(user.date_joined),
    }


def row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"] or "User",
        daily_goal=row["daily_goal"],
        streak_count=row["streak_count"],
        total_points=row["total_points"],
        last_active_at=from_iso(row["last_active_at"]),
        notifications_enabled=bool(row["notifications_enabled"]),
        date_joined=from_iso(row["date_joined"]),
    )


def row_to_exam_session(row: sqlite3.Row) -> ExamSession:
    return ExamSession(
        id=row["id"],
        date=from_iso(row["date"]),
        total_questions=row["total_questions"],
        correct_answers=row["correct_answers"],
        incorrect_answers=row["incorrect_answers"],
        duration=row["duration"],
    )


class CardStore:
    """Durable storage for Flashcard, User and ExamSession records.

    Every call opens its own connection and commits before returning, so each
    write is its own transaction. Any ``sqlite3.Error`` surfaces as
    :class:`PersistenceError`.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        init_db(db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            logger.error("Could not open database {}: {}", self.db_path, e)
            raise PersistenceError(str(e)) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Database operation failed: {}", e)
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    # ---- flashcards ----

    def insert_card(self, card: Flashcard) -> None:
        row = card_to_row(card)
        placeholders = ", ".join(f":{c}" for c in CARD_COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO flashcards ({', '.join(CARD_COLUMNS)}) VALUES ({placeholders})",
                row,
            )

    def update_card(self, card: Flashcard) -> None:
        row = card_to_row(card)
        assignments = ", ".join(f"{c} = :{c}" for c in CARD_COLUMNS if c != "id")
        with self._connect() as conn:
            cur = conn.execute(f"UPDATE flashcards SET {assignments} WHERE id = :id", row)
            if cur.rowcount == 0:
                raise PersistenceError(f"Flashcard {card.id} does not exist")

    def get_card(self, card_id: str) -> Optional[Flashcard]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)).fetchone()
        return row_to_card(row) if row else None

    def fetch_cards(
        self,
        where: str = "",
        params: Sequence = (),
        order_by: str = "date_created DESC",
        limit: Optional[int] = None,
    ) -> list[Flashcard]:
        sql = "SELECT * FROM flashcards"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params = (*params, limit)
        with self._connect() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [row_to_card(r) for r in rows]

    def count_cards(self, where: str = "", params: Sequence = ()) -> int:
        sql = "SELECT COUNT(*) FROM flashcards"
        if where:
            sql += f" WHERE {where}"
        with self._connect() as conn:
            return conn.execute(sql, tuple(params)).fetchone()[0]

    def delete_card(self, card: Flashcard) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM flashcards WHERE id = ?", (card.id,))

    def word_exists(self, word: str, source_language: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM flashcards WHERE casefold(word) = casefold(?) AND source_language = ? LIMIT 1",
                (word.strip(), source_language),
            ).fetchone()
        return row is not None

    # ---- user ----

    def get_or_create_user(self, now: Optional[datetime] = None) -> User:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users ORDER BY date_joined LIMIT 1").fetchone()
            if row:
                return row_to_user(row)
            user = new_user(now)
            placeholders = ", ".join(f":{c}" for c in USER_COLUMNS)
            conn.execute(
                f"INSERT INTO users ({', '.join(USER_COLUMNS)}) VALUES ({placeholders})",
                user_to_row(user),
            )
        logger.info("Created user {}", user.id)
        return user

    def update_user(self, user: User) -> None:
        assignments = ", ".join(f"{c} = :{c}" for c in USER_COLUMNS if c != "id")
        with self._connect() as conn:
            conn.execute(f"UPDATE users SET {assignments} WHERE id = :id", user_to_row(user))

    # ---- exam sessions ----

    def insert_exam_session(self, session: ExamSession) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO exam_sessions
                (id, date, total_questions, correct_answers, incorrect_answers, duration)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (session.id, to_iso(session.date), session.total_questions,
                 session.correct_answers, session.incorrect_answers, session.duration),
            )

    def fetch_exam_sessions(self) -> list[ExamSession]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM exam_sessions ORDER BY date DESC").fetchall()
        return [row_to_exam_session(r) for r in rows]

    def clear_all(self) -> None:
        """Wipe every card, user and exam record."""
        with self._connect() as conn:
            conn.execute("DELETE FROM flashcards")
            conn.execute("DELETE FROM users")
            conn.execute("DELETE FROM exam_sessions")
        logger.info("Cleared all data in {}", self.db_path)
