"""Adding, looking up and deleting vocabulary cards."""
import re
from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

from lexibox.content import ContentGenerator, WordDefinition, generate_word_content
from lexibox.errors import DuplicateWordError, InvalidWordError
from lexibox.models import Flashcard, new_flashcard, normalize_tags
from lexibox.store import CardStore

MAX_WORD_LENGTH = 80
_WORD_RE = re.compile(r"^[^\W\d_][\w\s'’.\-]*$", re.UNICODE)


def validate_word(word: str) -> str:
    """Return the stripped word or raise ``InvalidWordError``."""
    cleaned = (word or "").strip()
    if not cleaned:
        raise InvalidWordError("Word must not be empty")
    if len(cleaned) > MAX_WORD_LENGTH:
        raise InvalidWordError(f"Word must be at most {MAX_WORD_LENGTH} characters")
    if not _WORD_RE.match(cleaned):
        raise InvalidWordError(f"'{cleaned}' does not look like a word or phrase")
    return cleaned


def check_word_exists(store: CardStore, word: str, source_language: str) -> bool:
    """Case-insensitive duplicate check within one source language."""
    return store.word_exists(word, source_language)


def create_flashcard(
    store: CardStore,
    content: WordDefinition,
    source_language: str,
    target_language: str,
    tags: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Flashcard:
    """Validate and insert a card built from generated (or hand-written) content."""
    word = validate_word(content.word)
    if check_word_exists(store, word, source_language):
        raise DuplicateWordError(word, source_language)
    card = new_flashcard(
        word=word,
        source_language=source_language,
        target_language=target_language,
        definition=content.definition,
        short_definition=content.short_definition,
        translation=content.translation,
        example=content.example,
        phonetics=content.phonetics,
        audio_url=content.audio_url,
        cefr_level=content.cefr_level,
        tags=normalize_tags([*(tags or []), *content.tags]),
        now=now,
    )
    store.insert_card(card)
    logger.info("Added '{}' ({} -> {})", card.word, source_language, target_language)
    return card


def add_word(
    store: CardStore,
    word: str,
    source_language: str,
    target_language: str,
    generator: Optional[ContentGenerator] = None,
    tags: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Flashcard:
    """Generate content for ``word`` and store it as a new card.

    Validation and the duplicate check run before the generator is called, so
    a rejected word costs no API request and writes nothing.
    """
    word = validate_word(word)
    if check_word_exists(store, word, source_language):
        raise DuplicateWordError(word, source_language)
    content = generate_word_content(word, source_language, target_language, generator)
    # Generators may re-case the word; keep what the user typed.
    content = content.model_copy(update={"word": word})
    return create_flashcard(store, content, source_language, target_language, tags=tags, now=now)


def get_card_by_word(store: CardStore, word: str, source_language: Optional[str] = None) -> Optional[Flashcard]:
    if source_language:
        cards = store.fetch_cards("casefold(word) = casefold(?) AND source_language = ?", (word.strip(), source_language))
    else:
        cards = store.fetch_cards("casefold(word) = casefold(?)", (word.strip(),))
    return cards[0] if cards else None


def get_mastered_cards(store: CardStore) -> list[Flashcard]:
    return store.fetch_cards("mastered = 1", order_by="word COLLATE NOCASE")


def list_tags(store: CardStore) -> list[str]:
    """All tags in use, alphabetical."""
    tags: set[str] = set()
    for card in store.fetch_cards(order_by=""):
        tags.update(card.tags)
    return sorted(tags)


def delete_flashcard(store: CardStore, card: Flashcard) -> None:
    store.delete_card(card)
    logger.info("Deleted '{}'", card.word)
