"""Seed an empty store with sample vocabulary."""
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from lexibox.content import WordDefinition
from lexibox.flashcards import create_flashcard
from lexibox.store import CardStore

DATA_DIR = Path(__file__).parent / "data"


def is_seeded(store: CardStore) -> bool:
    """Check whether the store already holds any cards."""
    return store.count_cards() > 0


def seed_sample_words(store: CardStore, now: Optional[datetime] = None) -> int:
    """Insert the sample cards from sample_words.json. Returns the number inserted."""
    data = json.loads((DATA_DIR / "sample_words.json").read_text(encoding="utf-8"))
    count = 0
    for item in data["words"]:
        content = WordDefinition.model_validate(item)
        create_flashcard(
            store, content, data["source_language"], data["target_language"], now=now,
        )
        count += 1
    return count


def seed_all(store: CardStore) -> int:
    """Seed only when there are no cards yet."""
    if is_seeded(store):
        return 0
    return seed_sample_words(store)
