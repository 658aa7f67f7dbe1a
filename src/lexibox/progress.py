"""User progress: points, streak, level and dashboard statistics."""
from datetime import datetime, timedelta
from typing import Callable, Optional

from loguru import logger

from lexibox.constants import MASTERY_BONUS_POINTS, MAX_BOX, MIN_BOX
from lexibox.leitner import LeitnerEngine
from lexibox.models import CEFRLevel, SessionMode, User, calc_level
from lexibox.store import CardStore


def update_streak(user: User, now: datetime) -> None:
    """Advance, keep or reset the daily streak for a due-review session on ``now``."""
    if user.last_active_at is None:
        user.streak_count = 1
    else:
        last_day = user.last_active_at.date()
        today = now.date()
        if last_day >= today:
            # Already counted today
            pass
        elif last_day == today - timedelta(days=1):
            user.streak_count += 1
        else:
            user.streak_count = 1
    user.last_active_at = now


class ProgressAggregator:
    """Folds completed sessions into the single user record."""

    def __init__(self, store: CardStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def on_session_complete(
        self,
        mode: SessionMode,
        points_earned: int,
        mastered_count: int = 0,
        now: Optional[datetime] = None,
    ) -> User:
        now = now or self.clock()
        user = self.store.get_or_create_user(now)
        bonus = mastered_count * MASTERY_BONUS_POINTS
        user.total_points += points_earned + bonus
        # Only spaced-repetition sessions count toward the streak
        if mode is SessionMode.DUE_REVIEW:
            update_streak(user, now)
        self.store.update_user(user)
        logger.info(
            "{} session complete: +{} points (+{} mastery bonus), streak {}",
            mode.value, points_earned, bonus, user.streak_count,
        )
        return user


def level(points: int) -> int:
    return calc_level(points)


def box_distribution(store: CardStore) -> dict[int, int]:
    counts = {box: 0 for box in range(MIN_BOX, MAX_BOX + 1)}
    for card in store.fetch_cards(order_by=""):
        counts[card.box] += 1
    return counts


def cefr_distribution(store: CardStore) -> dict[str, int]:
    counts = {lvl.value: 0 for lvl in CEFRLevel}
    for card in store.fetch_cards(order_by=""):
        if card.cefr_level:
            counts[card.cefr_level.value] += 1
    return counts


def exam_statistics(store: CardStore) -> dict:
    sessions = store.fetch_exam_sessions()
    return {
        "total_exams": len(sessions),
        "total_questions": sum(s.total_questions for s in sessions),
        "correct_answers": sum(s.correct_answers for s in sessions),
        "incorrect_answers": sum(s.incorrect_answers for s in sessions),
    }


def get_stats(store: CardStore, engine: LeitnerEngine, now: Optional[datetime] = None) -> dict:
    user = store.get_or_create_user()
    total = store.count_cards()
    mastered = store.count_cards("mastered = 1")
    return {
        "total_cards": total,
        "mastered_cards": mastered,
        "due_today": len(engine.due_cards(now)),
        "total_points": user.total_points,
        "streak": user.streak_count,
        "level": level(user.total_points),
        "daily_goal": user.daily_goal,
    }
