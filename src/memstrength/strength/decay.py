"""Inactivity decay model.

Decay starts once the latest activity is 24 hours old and grows linearly with
the days of inactivity. Higher current strength decays faster so scores cannot
saturate.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from memstrength.strength.factors import hours_since
from memstrength.strength.types import Activity

GRACE_PERIOD_HOURS = 24.0
BASE_DECAY_RATE = 0.1
STRENGTH_DECAY_RATE = 0.2


def decay_rate(current_strength: float) -> float:
    """Daily decay rate for a strength value (0.1 at 0, 0.3 at 100)."""
    strength = max(0.0, min(100.0, current_strength))
    return BASE_DECAY_RATE + (strength / 100) * STRENGTH_DECAY_RATE


def calculate_decay(
    current_strength: float,
    activities: Iterable[Activity],
    now: Optional[datetime] = None,
) -> float:
    """Compute the inactivity penalty.

    Args:
        current_strength: Previously persisted strength
        activities: Activity window; only the latest timestamp matters
        now: Reference time (default: current UTC time)

    Returns:
        Decay >= 0; 0 for an empty window or when the latest activity
        is less than 24 hours old
    """
    timestamps = [a.timestamp for a in activities]
    if not timestamps:
        return 0.0

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    hours = hours_since(max(timestamps), now)
    if hours < GRACE_PERIOD_HOURS:
        return 0.0

    days_inactive = hours / 24
    return days_inactive * decay_rate(current_strength)
