"""Strength operations exposed to collaborators.

This module ties the pure compute stages (factors, aggregate, decay) to the
StrengthStore:
- recalculate_after_activity: the only mutation entry point
- read_strength: the only read entry point
- compute_strength: the pure read-free core of a recalculation
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from memstrength.storage.bridge import StrengthStore
from memstrength.storage.remote import StrengthConflictError
from memstrength.strength.aggregate import aggregate
from memstrength.strength.decay import calculate_decay
from memstrength.strength.factors import compute_factors
from memstrength.strength.points import round_half_up
from memstrength.strength.types import Activity, MemoryStrengthFactors, RecalculationResult

logger = logging.getLogger(__name__)

MIN_STRENGTH = 0
MAX_STRENGTH = 100

DEFAULT_WINDOW_DAYS = 30
DEFAULT_CONFLICT_RETRIES = 3


@dataclass
class StrengthComputation:
    """Outcome of the pure compute stages for one recalculation."""
    strength: int
    factors: MemoryStrengthFactors
    base_increase: float
    decay: float


def compute_strength(
    previous_strength: float,
    activities: Iterable[Activity],
    now: Optional[datetime] = None,
) -> StrengthComputation:
    """Run factors, aggregation and decay and derive the new strength.

    new = round(clamp(previous + increase - decay, 0, 100))

    Args:
        previous_strength: Previously persisted strength
        activities: Activity window to score
        now: Reference time (default: current UTC time)

    Returns:
        StrengthComputation with the new strength and its ingredients
    """
    now = now or datetime.now(timezone.utc)
    window = list(activities)

    factors = compute_factors(window, now=now)
    base_increase = aggregate(factors)
    decay = calculate_decay(previous_strength, window, now=now)

    raw = previous_strength + base_increase - decay
    strength = round_half_up(max(MIN_STRENGTH, min(MAX_STRENGTH, raw)))

    return StrengthComputation(
        strength=strength,
        factors=factors,
        base_increase=base_increase,
        decay=decay,
    )


async def read_strength(store: StrengthStore, user_id: str) -> int:
    """Read a user's strength, remote first with cache fallback.

    Args:
        store: StrengthStore to read from
        user_id: The user's ID

    Returns:
        Strength in [0, 100]; 0 if no value is known anywhere
    """
    reading = await store.read(user_id)
    return max(MIN_STRENGTH, min(MAX_STRENGTH, reading.strength))


async def recalculate_after_activity(
    store: StrengthStore,
    user_id: str,
    activity: Activity,
    recent_window: Optional[Iterable[Activity]] = None,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
    conflict_retries: int = DEFAULT_CONFLICT_RETRIES,
) -> RecalculationResult:
    """Record an activity and recalculate the user's strength.

    Workflow:
    1. Append the activity to the activity log
    2. Read the current strength (remote first, cache fallback)
    3. Score the window: recent_window plus the new activity when given,
       otherwise the last window_days of the activity log; the new activity
       is always part of the window, even when back-dated
    4. Write the new value with compare-and-swap; on a version conflict,
       go back to step 2, up to conflict_retries times

    Remote and cache failures never abort the recalculation; the value is
    kept locally as pending instead.

    Args:
        store: StrengthStore for reads, writes and the activity log
        user_id: The user's ID
        activity: The new activity
        recent_window: Caller-supplied activities to score (optional)
        now: Reference time (default: current UTC time)
        window_days: Log window length when recent_window is not given
        conflict_retries: Attempts before giving up on the remote store

    Returns:
        RecalculationResult with the new strength in [0, 100]

    Example:
        >>> result = await recalculate_after_activity(
        ...     store=store,
        ...     user_id="user-1",
        ...     activity=Activity(type=ActivityType.MEMORY_ADDED, timestamp=now, value=10),
        ... )
        >>> result.strength
        2
    """
    now = now or datetime.now(timezone.utc)
    supplied = list(recent_window) if recent_window is not None else None

    logged_id = store.append_activity(user_id, activity)

    attempts = 0
    while True:
        attempts += 1
        reading = await store.read(user_id)

        if supplied is not None:
            window = supplied + [activity]
        else:
            since = now - timedelta(days=window_days)
            window = store.get_activities(user_id, since=since)
            # Back-dated, unlogged, or log unreadable
            if not window or logged_id is None or activity.timestamp < since:
                window.append(activity)

        computation = compute_strength(reading.strength, window, now=now)

        try:
            written = await store.write(user_id, computation.strength, reading.version)
            break
        except StrengthConflictError as e:
            if attempts >= conflict_retries:
                logger.warning(
                    f"Giving up on remote write for {user_id} after {attempts} conflicts; "
                    "keeping value pending"
                )
                written = store.keep_pending(user_id, computation.strength, reading.version, str(e))
                break
            logger.info(f"Concurrent strength update for {user_id}, recomputing: {e}")

    logger.debug(
        f"Recalculated strength for {user_id}: {reading.strength} -> {computation.strength} "
        f"(+{computation.base_increase:.3f}, -{computation.decay:.3f})"
    )

    return RecalculationResult(
        strength=computation.strength,
        previous_strength=reading.strength,
        base_increase=computation.base_increase,
        decay=computation.decay,
        factors=computation.factors,
        synced=written.synced,
        attempts=attempts,
    )
