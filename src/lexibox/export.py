"""Export cards and progress to JSON."""
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from lexibox.db import to_iso
from lexibox.store import CardStore


def build_export(store: CardStore, now: Optional[datetime] = None) -> dict:
    user = store.get_or_create_user()
    cards = store.fetch_cards(order_by="date_created ASC")
    return {
        "exported_at": to_iso(now or datetime.now()),
        "user": {
            "name": user.name,
            "total_points": user.total_points,
            "streak_count": user.streak_count,
            "daily_goal": user.daily_goal,
            "date_joined": to_iso(user.date_joined),
        },
        "flashcards": [
            {
                "word": c.word,
                "definition": c.definition,
                "short_definition": c.short_definition,
                "translation": c.translation,
                "example": c.example,
                "phonetics": c.phonetics,
                "cefr_level": c.cefr_level.value if c.cefr_level else None,
                "tags": c.tags,
                "source_language": c.source_language,
                "target_language": c.target_language,
                "box": c.box,
                "mastered": c.mastered,
                "study_count": c.study_count,
                "correct_count": c.correct_count,
                "next_review_at": to_iso(c.next_review_at),
                "date_created": to_iso(c.date_created),
            }
            for c in cards
        ],
        "exam_sessions": [
            {
                "date": to_iso(s.date),
                "total_questions": s.total_questions,
                "correct_answers": s.correct_answers,
                "incorrect_answers": s.incorrect_answers,
                "duration": s.duration,
            }
            for s in store.fetch_exam_sessions()
        ],
    }


def export_to_file(store: CardStore, file_path: str) -> Path:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = build_export(store)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Exported {} cards to {}", len(data["flashcards"]), path)
    return path
