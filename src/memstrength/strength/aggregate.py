"""Score aggregator: weighted combination of factors into a base increase."""

from memstrength.strength.types import MemoryStrengthFactors

# Weights in percent; kept integral so all-100 factors aggregate exactly
_WEIGHT_PERCENT: dict[str, int] = {
    "consistency": 15,
    "activity_count": 10,
    "recent_activity": 15,
    "engagement_depth": 15,
    "activity_diversity": 10,
    "progress_streak": 15,
    "challenge_level": 10,
    "social_engagement": 10,
}

FACTOR_WEIGHTS: dict[str, float] = {
    name: percent / 100 for name, percent in _WEIGHT_PERCENT.items()
}

MIN_INCREASE = 0.5
MAX_INCREASE = 4.0


def weighted_score(factors: MemoryStrengthFactors) -> float:
    """Weighted average of the factors, scaled to [0, 1]."""
    values = factors.as_dict()
    total = sum(values[name] * percent for name, percent in _WEIGHT_PERCENT.items())
    return total / 10000


def aggregate(factors: MemoryStrengthFactors) -> float:
    """Combine factors into the base strength increase.

    All-zero factors give exactly MIN_INCREASE, all-100 factors give
    exactly MAX_INCREASE.

    Args:
        factors: Factors in [0, 100]

    Returns:
        Base increase in [0.5, 4.0]
    """
    increase = MIN_INCREASE + weighted_score(factors) * (MAX_INCREASE - MIN_INCREASE)
    return max(MIN_INCREASE, min(MAX_INCREASE, increase))
