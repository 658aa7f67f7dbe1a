"""Leitner-box scheduling."""
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from loguru import logger

from lexibox.constants import HARD_RETRY_HOURS, MASTERY_THRESHOLD, MAX_BOX, MIN_BOX
from lexibox.db import to_iso
from lexibox.models import Flashcard, Outcome, normalize_tags
from lexibox.store import CardStore


def clamp_box(box: int) -> int:
    return max(MIN_BOX, min(MAX_BOX, box))


def review_interval(box: int) -> timedelta:
    """Days until the next review: 2^(box-1), so 1, 2, 4, 8, 16."""
    return timedelta(days=2 ** (clamp_box(box) - 1))


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def apply_answer(card: Flashcard, outcome: Outcome, now: datetime) -> dict:
    """Calculate the card's scheduling state after one answer.

    Args:
        card: Card in its current state (not modified)
        outcome: Hard resets to box 1, Good advances one box, Easy two
        now: Time of the answer

    Returns:
        Dict with updated box, next_review_at, last_studied_at, study_count,
        correct_count and mastered.
    """
    study_count = card.study_count + 1
    correct_count = card.correct_count
    mastered = card.mastered

    if outcome.is_correct:
        correct_count += 1
        steps = 2 if outcome is Outcome.EASY else 1
        box = clamp_box(card.box + steps)
        next_review_at = now + review_interval(box)
        if box == MAX_BOX and correct_count / study_count >= MASTERY_THRESHOLD:
            mastered = True
    else:
        # Mastery is never revoked here
        box = MIN_BOX
        next_review_at = now + timedelta(hours=HARD_RETRY_HOURS)

    return {
        "box": box,
        "next_review_at": next_review_at,
        "last_studied_at": now,
        "study_count": study_count,
        "correct_count": correct_count,
        "mastered": mastered,
    }


class LeitnerEngine:
    """Owns box state, due queries and the answer transition rule."""

    def __init__(self, store: CardStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def due_cards(self, as_of: Optional[datetime] = None) -> list[Flashcard]:
        """Non-mastered cards scheduled within the calendar day of ``as_of``."""
        day_start = start_of_day(as_of or self.clock())
        day_end = day_start + timedelta(days=1)
        cards = self.store.fetch_cards(
            "mastered = 0 AND next_review_at >= ? AND next_review_at < ?",
            (to_iso(day_start), to_iso(day_end)),
            order_by="next_review_at ASC",
        )
        logger.debug("Found {} due cards for {}", len(cards), day_start.date())
        return cards

    def all_cards(self, filter_tags: Optional[Iterable[str]] = None) -> list[Flashcard]:
        """Every card, newest first, optionally limited to cards sharing a tag."""
        cards = self.store.fetch_cards(order_by="date_created DESC")
        wanted = set(normalize_tags(filter_tags))
        if wanted:
            cards = [c for c in cards if wanted.intersection(c.tags)]
        return cards

    def record_answer(self, card: Flashcard, outcome: Outcome, now: Optional[datetime] = None) -> Flashcard:
        """Apply an answer, update ``card`` in place and persist it.

        The in-memory card is updated before the write so that a failed save
        (``PersistenceError``, re-raised) does not lose the answer.
        """
        now = now or self.clock()
        updated = apply_answer(card, outcome, now)
        was_mastered = card.mastered
        for key, value in updated.items():
            setattr(card, key, value)
        if card.mastered and not was_mastered:
            logger.info("'{}' mastered", card.word)
        logger.debug("'{}' answered {} -> box {}", card.word, outcome.value, card.box)
        self.store.update_card(card)
        return card

    def touch(self, card: Flashcard, now: Optional[datetime] = None) -> Flashcard:
        """Review-only path: record that the card was seen, leave scheduling alone."""
        card.last_studied_at = now or self.clock()
        self.store.update_card(card)
        return card
