"""Factor calculator: turns an activity set into eight normalized sub-scores.

Every factor is clamped into [0, 100]. The calculation is pure; pass `now`
explicitly for repeatable results.
"""

import math
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from memstrength.strength.types import (
    COLLABORATION_SOURCE,
    Activity,
    ActivityType,
    Difficulty,
    MemoryStrengthFactors,
)

SECONDS_PER_DAY = 86400.0
SECONDS_PER_HOUR = 3600.0

ACTIVITY_TYPE_COUNT = len(ActivityType)

# A streak of this many days maxes out progress_streak
STREAK_FULL_DAYS = 7
MIN_STREAK_DAYS = 2

CHALLENGE_BASE_SCORES: dict[Optional[Difficulty], float] = {
    Difficulty.EASY: 10.0,
    Difficulty.MEDIUM: 25.0,
    Difficulty.HARD: 50.0,
}
CHALLENGE_DEFAULT_SCORE = 15.0
PERFECT_SCORE_MULTIPLIER = 2.0
GAME_COMPLETED_BONUS = 10.0

SOCIAL_POINTS_PER_ACTIVITY = 25.0
SOCIAL_POINTS_PER_TYPE = 10.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hours_since(timestamp: datetime, now: datetime) -> float:
    """Hours elapsed between timestamp and now (negative if in the future)."""
    return (now - timestamp).total_seconds() / SECONDS_PER_HOUR


def _active_dates(activities: Iterable[Activity]) -> list[date]:
    """Sorted distinct UTC calendar dates with at least one activity."""
    return sorted({a.timestamp.date() for a in activities})


def _consistency(ordered: list[Activity]) -> float:
    elapsed = (ordered[-1].timestamp - ordered[0].timestamp).total_seconds()
    span_days = max(1, math.ceil(elapsed / SECONDS_PER_DAY))
    unique_days = len(_active_dates(ordered))
    return min(100.0, unique_days / span_days * 100)


def longest_day_run(activities: Iterable[Activity]) -> int:
    """Length of the longest run of consecutive active calendar days.

    Returns:
        Number of days in the longest run (0 for no activities)
    """
    dates = _active_dates(activities)
    if not dates:
        return 0

    longest = 1
    current = 1
    for prev, curr in zip(dates, dates[1:]):
        if (curr - prev).days <= 1:
            current += 1
        else:
            longest = max(longest, current)
            current = 1
    return max(longest, current)


def _progress_streak(activities: list[Activity]) -> float:
    run = longest_day_run(activities)
    if run < MIN_STREAK_DAYS:
        return 0.0
    return min(100.0, run * (100 / STREAK_FULL_DAYS))


def _challenge_level(activities: list[Activity]) -> float:
    qualifying = [
        a for a in activities
        if a.type in (ActivityType.GAME_COMPLETED, ActivityType.GAME_PERFECT_SCORE)
        or a.difficulty is not None
    ]
    if not qualifying:
        return 0.0

    total = 0.0
    for activity in qualifying:
        score = CHALLENGE_BASE_SCORES.get(activity.difficulty, CHALLENGE_DEFAULT_SCORE)
        if activity.type == ActivityType.GAME_PERFECT_SCORE:
            score *= PERFECT_SCORE_MULTIPLIER
        if activity.type == ActivityType.GAME_COMPLETED:
            score += GAME_COMPLETED_BONUS
        total += score

    return min(100.0, total / len(qualifying) * 2)


def _social_engagement(activities: list[Activity]) -> float:
    social = [
        a for a in activities
        if a.type == ActivityType.MEMORY_SHARED
        or a.import_source == COLLABORATION_SOURCE
    ]
    if not social:
        return 0.0

    distinct_types = len({a.type for a in social})
    return min(
        100.0,
        len(social) * SOCIAL_POINTS_PER_ACTIVITY + distinct_types * SOCIAL_POINTS_PER_TYPE,
    )


def compute_factors(
    activities: Iterable[Activity],
    now: Optional[datetime] = None,
) -> MemoryStrengthFactors:
    """Compute the eight strength factors over a set of activities.

    Args:
        activities: Activities in any order
        now: Reference time for recency (default: current UTC time)

    Returns:
        MemoryStrengthFactors with every value in [0, 100]; all zeros for
        an empty input
    """
    ordered = sorted(activities, key=lambda a: a.timestamp)
    if not ordered:
        return MemoryStrengthFactors()

    now = now or _utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    count = len(ordered)
    average_value = sum(a.value for a in ordered) / count
    distinct_types = len({a.type for a in ordered})

    factors = MemoryStrengthFactors(
        consistency=_consistency(ordered),
        activity_count=min(100.0, count * 2.0),
        recent_activity=max(0.0, 100 - hours_since(ordered[-1].timestamp, now)),
        engagement_depth=min(100.0, average_value * 10),
        activity_diversity=min(100.0, distinct_types / ACTIVITY_TYPE_COUNT * 100),
        progress_streak=_progress_streak(ordered),
        challenge_level=_challenge_level(ordered),
        social_engagement=_social_engagement(ordered),
    )

    return MemoryStrengthFactors(
        **{name: _clamp(value) for name, value in factors.as_dict().items()}
    )
