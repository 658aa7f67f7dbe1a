"""Data classes for the vocabulary domain model."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from lexibox.constants import (
    DAILY_GOAL_STEP, DEFAULT_DAILY_GOAL, MAX_DAILY_GOAL, MIN_BOX, MIN_DAILY_GOAL,
    POINTS_PER_LEVEL,
)
from lexibox.errors import InvalidWordError, ValidationError


class Outcome(str, Enum):
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @property
    def is_correct(self) -> bool:
        return self is not Outcome.HARD


class SessionMode(str, Enum):
    DUE_REVIEW = "due_review"
    FULL_REVIEW = "full_review"
    EXAM = "exam"


class CEFRLevel(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["CEFRLevel"]:
        """Return the level for a string like 'b2', or None if unrecognised."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class QuestionKind(str, Enum):
    DEFINITION = "definition"
    WORD_DIFFERENT_FROM_GROUP = "word_different_from_group"
    WORD_MOST_SIMILAR = "word_most_similar"
    CONTEXT_SCENARIO = "context_scenario"
    FILL_IN_BLANK = "fill_in_blank"


def normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Lower-case, strip and de-duplicate tags, keeping first-seen order."""
    result: list[str] = []
    for tag in tags or []:
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


@dataclass
class Flashcard:
    id: str
    word: str
    source_language: str
    target_language: str
    next_review_at: datetime
    date_created: datetime
    definition: str = ""
    short_definition: str = ""
    translation: str = ""
    example: str = ""
    phonetics: str = ""
    audio_url: Optional[str] = None
    cefr_level: Optional[CEFRLevel] = None
    tags: list[str] = field(default_factory=list)
    box: int = MIN_BOX
    last_studied_at: Optional[datetime] = None
    study_count: int = 0
    correct_count: int = 0
    mastered: bool = False

    @property
    def success_rate(self) -> float:
        if self.study_count == 0:
            return 0.0
        return self.correct_count / self.study_count


@dataclass
class User:
    id: str
    date_joined: datetime
    name: str = "User"
    daily_goal: int = DEFAULT_DAILY_GOAL
    streak_count: int = 0
    total_points: int = 0
    last_active_at: Optional[datetime] = None
    notifications_enabled: bool = True

    @property
    def level(self) -> int:
        return calc_level(self.total_points)

    def set_daily_goal(self, goal: int) -> None:
        if not MIN_DAILY_GOAL <= goal <= MAX_DAILY_GOAL or goal % DAILY_GOAL_STEP:
            raise ValidationError(
                f"Daily goal must be between {MIN_DAILY_GOAL} and {MAX_DAILY_GOAL} "
                f"in steps of {DAILY_GOAL_STEP}"
            )
        self.daily_goal = goal


@dataclass
class ExamSession:
    id: str
    date: datetime
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    duration: float = 0.0


@dataclass
class ExamQuestion:
    prompt_text: str
    options: list[str]
    correct_option_index: int
    source_card: Flashcard
    kind: QuestionKind
    hint: Optional[str] = None

    @property
    def correct_answer(self) -> str:
        return self.options[self.correct_option_index]


def calc_level(points: int) -> int:
    return max(1, points // POINTS_PER_LEVEL)


def new_id() -> str:
    return uuid.uuid4().hex


def new_flashcard(
    word: str,
    source_language: str,
    target_language: str,
    definition: str = "",
    short_definition: str = "",
    translation: str = "",
    example: str = "",
    phonetics: str = "",
    audio_url: Optional[str] = None,
    cefr_level: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Flashcard:
    """Build a brand new card, due immediately, in box 1."""
    word = (word or "").strip()
    if not word:
        raise InvalidWordError("Word must not be empty")
    now = now or datetime.now()
    return Flashcard(
        id=new_id(),
        word=word,
        source_language=source_language,
        target_language=target_language,
        next_review_at=now,
        date_created=now,
        definition=definition,
        short_definition=short_definition,
        translation=translation,
        example=example,
        phonetics=phonetics,
        audio_url=audio_url,
        cefr_level=CEFRLevel.parse(cefr_level) if isinstance(cefr_level, str) else cefr_level,
        tags=normalize_tags(tags),
    )


def new_user(now: Optional[datetime] = None) -> User:
    return User(id=new_id(), date_joined=now or datetime.now())


def new_exam_session(
    total_questions: int,
    correct_answers: int,
    incorrect_answers: int,
    duration: float,
    now: Optional[datetime] = None,
) -> ExamSession:
    return ExamSession(
        id=new_id(),
        date=now or datetime.now(),
        total_questions=total_questions,
        correct_answers=correct_answers,
        incorrect_answers=incorrect_answers,
        duration=duration,
    )
