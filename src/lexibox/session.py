"""Study session management: due review, full review and exam sessions."""
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence

from loguru import logger

from lexibox.constants import POINTS_EASY, POINTS_GOOD, POINTS_HARD
from lexibox.errors import PersistenceError
from lexibox.leitner import LeitnerEngine
from lexibox.models import Flashcard, Outcome, SessionMode, User
from lexibox.progress import ProgressAggregator

ANSWER_POINTS = {
    Outcome.HARD: POINTS_HARD,
    Outcome.GOOD: POINTS_GOOD,
    Outcome.EASY: POINTS_EASY,
}

CardSelector = Callable[[], Sequence[Flashcard]]


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass
class SessionStats:
    total_cards: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0
    easy_answers: int = 0
    skipped: int = 0
    points: int = 0
    mastered_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def answered(self) -> int:
        return self.correct_answers + self.incorrect_answers + self.easy_answers

    @property
    def accuracy(self) -> float:
        if self.answered == 0:
            return 0.0
        return (self.correct_answers + self.easy_answers) / self.answered

    @property
    def duration(self) -> float:
        if not self.start_time or not self.end_time:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True)
class AnswerResult:
    card: Flashcard
    outcome: Outcome
    points: int
    newly_mastered: bool = False
    error: Optional[PersistenceError] = None


@dataclass(frozen=True)
class SessionCompleted:
    """Delivered to listeners when a session runs out of cards."""

    mode: SessionMode
    stats: SessionStats
    due_again: tuple[Flashcard, ...] = ()
    user: Optional[User] = None


@dataclass
class _Snapshot:
    cards: tuple[Flashcard, ...] = ()
    index: int = 0
    revealed: bool = False


class SessionController:
    """Drives one session at a time through NOT_STARTED -> IN_PROGRESS -> COMPLETE.

    Calls made in the wrong state are ignored rather than raised: the caller
    is a UI that may race its own state.
    """

    def __init__(
        self,
        engine: LeitnerEngine,
        aggregator: ProgressAggregator,
        clock: Callable[[], datetime] = datetime.now,
        exam_word_count: int = 10,
        rng: Optional[random.Random] = None,
    ):
        self.engine = engine
        self.aggregator = aggregator
        self.clock = clock
        self.exam_word_count = exam_word_count
        self.rng = rng or random.Random()
        self.listeners: list[Callable[[SessionCompleted], None]] = []
        self.mode: Optional[SessionMode] = None
        self.state = SessionState.NOT_STARTED
        self.stats = SessionStats()
        self.persistence_errors: list[PersistenceError] = []
        self.user: Optional[User] = None
        self._snap = _Snapshot()

    # ---- public ----

    @property
    def cards(self) -> tuple[Flashcard, ...]:
        return self._snap.cards

    @property
    def index(self) -> int:
        return self._snap.index

    @property
    def revealed(self) -> bool:
        return self._snap.revealed

    def add_listener(self, listener: Callable[[SessionCompleted], None]) -> None:
        self.listeners.append(listener)

    def default_selector(self, mode: SessionMode) -> CardSelector:
        if mode is SessionMode.DUE_REVIEW:
            return lambda: self.engine.due_cards(self.clock())
        if mode is SessionMode.FULL_REVIEW:
            return self.engine.all_cards

        def exam_sample() -> list[Flashcard]:
            pool = self.engine.all_cards()
            return self.rng.sample(pool, min(self.exam_word_count, len(pool)))
        return exam_sample

    def start(self, mode: SessionMode, card_selector: Optional[CardSelector] = None) -> int:
        """Load and freeze the card list. Returns the number of cards."""
        if self.state is not SessionState.NOT_STARTED:
            self.reset()
        selector = card_selector or self.default_selector(mode)
        self.mode = mode
        self._snap = _Snapshot(cards=tuple(selector()))
        self.stats = SessionStats(total_cards=len(self._snap.cards), start_time=self.clock())
        self.state = SessionState.IN_PROGRESS
        logger.info("Started {} session with {} cards", mode.value, len(self._snap.cards))
        if not self._snap.cards:
            # Nothing to study: finish without crediting progress
            self.state = SessionState.COMPLETE
            self.stats.end_time = self.stats.start_time
        return len(self._snap.cards)

    def current_card(self) -> Optional[Flashcard]:
        if self.state is not SessionState.IN_PROGRESS:
            return None
        if self._snap.index >= len(self._snap.cards):
            self._complete()
            return None
        return self._snap.cards[self._snap.index]

    def reveal(self) -> None:
        if self.current_card() is None:
            logger.debug("reveal() ignored in state {}", self.state.value)
            return
        self._snap.revealed = True

    def answer(self, outcome: Outcome) -> Optional[AnswerResult]:
        card = self.current_card()
        if card is None:
            logger.debug("answer() ignored in state {}", self.state.value)
            return None

        points = ANSWER_POINTS[outcome]
        if outcome is Outcome.HARD:
            self.stats.incorrect_answers += 1
        elif outcome is Outcome.GOOD:
            self.stats.correct_answers += 1
        else:
            self.stats.easy_answers += 1
        self.stats.points += points

        was_mastered = card.mastered
        error = None
        try:
            if self.mode is SessionMode.DUE_REVIEW:
                self.engine.record_answer(card, outcome, self.clock())
            elif self.mode is SessionMode.FULL_REVIEW:
                self.engine.touch(card, self.clock())
        except PersistenceError as e:
            logger.error("Could not save '{}': {}", card.word, e)
            self.persistence_errors.append(e)
            error = e

        newly_mastered = card.mastered and not was_mastered
        if newly_mastered:
            self.stats.mastered_count += 1

        result = AnswerResult(card, outcome, points, newly_mastered, error)
        self._advance()
        return result

    def skip(self) -> None:
        if self.current_card() is None:
            logger.debug("skip() ignored in state {}", self.state.value)
            return
        self.stats.skipped += 1
        self._advance()

    def reset(self) -> None:
        self.mode = None
        self.state = SessionState.NOT_STARTED
        self.stats = SessionStats()
        self.persistence_errors = []
        self.user = None
        self._snap = _Snapshot()

    @property
    def remaining(self) -> int:
        return max(0, len(self._snap.cards) - self._snap.index)

    # ---- internals ----

    def _advance(self) -> None:
        self._snap.index += 1
        self._snap.revealed = False
        if self._snap.index >= len(self._snap.cards):
            self._complete()

    def _complete(self) -> None:
        self.state = SessionState.COMPLETE
        self.stats.end_time = self.clock()
        try:
            self.user = self.aggregator.on_session_complete(
                self.mode, self.stats.points, self.stats.mastered_count, self.stats.end_time,
            )
        except PersistenceError as e:
            logger.error("Could not save progress: {}", e)
            self.persistence_errors.append(e)

        due_again: tuple[Flashcard, ...] = ()
        if self.mode is SessionMode.DUE_REVIEW:
            due_again = tuple(c for c in self._snap.cards if not c.mastered)
        event = SessionCompleted(self.mode, self.stats, due_again, self.user)
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Session listener {} failed", listener)
        logger.info(
            "Completed {} session: {}/{} correct, {} points",
            self.mode.value, self.stats.correct_answers + self.stats.easy_answers,
            self.stats.answered, self.stats.points,
        )
