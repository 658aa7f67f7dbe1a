"""Scheduling and scoring constants."""

MIN_BOX = 1
MAX_BOX = 5

MASTERY_THRESHOLD = 0.8
MASTERY_BONUS_POINTS = 50

# Points per answer: Hard, Good, Easy
POINTS_HARD = 5
POINTS_GOOD = 10
POINTS_EASY = 15

HARD_RETRY_HOURS = 1

DEFAULT_DAILY_GOAL = 10
MIN_DAILY_GOAL = 5
MAX_DAILY_GOAL = 50
DAILY_GOAL_STEP = 5

POINTS_PER_LEVEL = 100

EXAM_OPTION_COUNT = 4
HINT_MAX_LENGTH = 150
PLACEHOLDER_DISTRACTORS = [
    "A completely different concept",
    "The opposite meaning",
    "A related but incorrect definition",
    "A similar sounding word's meaning",
    "An unrelated concept",
]
