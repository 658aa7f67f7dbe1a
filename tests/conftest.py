from datetime import datetime

import pytest

from lexibox.leitner import LeitnerEngine
from lexibox.models import new_flashcard
from lexibox.progress import ProgressAggregator
from lexibox.session import SessionController
from lexibox.store import CardStore

NOW = datetime(2024, 3, 15, 10, 0, 0)


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_lexibox.db")
    return db_path


@pytest.fixture
def store(tmp_db):
    return CardStore(tmp_db)


@pytest.fixture
def engine(store):
    return LeitnerEngine(store, clock=lambda: NOW)


@pytest.fixture
def aggregator(store):
    return ProgressAggregator(store, clock=lambda: NOW)


@pytest.fixture
def controller(engine, aggregator):
    return SessionController(engine, aggregator, clock=lambda: NOW)


@pytest.fixture
def make_card(store):
    """Insert a card; keyword overrides are applied before the insert."""
    def _make(word="hello", insert=True, **overrides):
        card = new_flashcard(
            word, "English", "Spanish",
            definition=f"meaning of {word}",
            translation=f"{word}-es",
            example=f"I said {word} yesterday.",
            now=overrides.pop("now", NOW),
        )
        for key, value in overrides.items():
            setattr(card, key, value)
        if insert:
            store.insert_card(card)
        return card
    return _make
