"""Point values for activities.

Producers call points_for() to know what an event is worth before recording it.
"""

import math
from typing import Optional, Union

from memstrength.strength.types import ActivityMetadata, ActivityType, Difficulty

BASE_POINTS: dict[ActivityType, int] = {
    ActivityType.MEMORY_ADDED: 10,
    ActivityType.MEMORY_IMPORTED: 3,
    ActivityType.GAME_COMPLETED: 15,
    ActivityType.MEMORY_REVIEWED: 5,
    ActivityType.DAILY_LOGIN: 2,
    ActivityType.GAME_PERFECT_SCORE: 25,
    ActivityType.MEMORY_SHARED: 8,
    ActivityType.STREAK_MAINTAINED: 12,
}

# Base points for a type outside the table
DEFAULT_POINTS = 5

DIFFICULTY_MULTIPLIERS: dict[Difficulty, float] = {
    Difficulty.EASY: 1.0,
    Difficulty.MEDIUM: 1.5,
    Difficulty.HARD: 2.0,
}

MAX_STREAK_BONUS = 10


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def points_for(
    activity_type: Union[ActivityType, str],
    metadata: Optional[ActivityMetadata] = None,
) -> int:
    """Get the point value of an activity.

    Applies the difficulty multiplier first, then adds the streak bonus
    (capped at MAX_STREAK_BONUS), then rounds.

    Args:
        activity_type: ActivityType or its string value. Unknown strings
            get DEFAULT_POINTS.
        metadata: Optional metadata carrying difficulty and streak_days

    Returns:
        Non-negative integer point value

    Example:
        >>> points_for(ActivityType.GAME_COMPLETED, ActivityMetadata(difficulty=Difficulty.HARD))
        30
        >>> points_for("daily_login", ActivityMetadata(streak_days=20))
        12
    """
    if isinstance(activity_type, str):
        try:
            activity_type = ActivityType(activity_type)
        except ValueError:
            pass

    points: float = BASE_POINTS.get(activity_type, DEFAULT_POINTS)  # type: ignore[arg-type]

    if metadata is not None:
        if metadata.difficulty is not None:
            points *= DIFFICULTY_MULTIPLIERS.get(metadata.difficulty, 1.0)

        if metadata.streak_days is not None:
            points += min(metadata.streak_days, MAX_STREAK_BONUS)

    return max(0, round_half_up(points))
