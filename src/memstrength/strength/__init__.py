"""Strength module for the memory strength engine.

This module provides the activity model and the pure compute stages (points,
factors, aggregation, decay). The operations that persist their result live in
memstrength.strength.operations.
"""

from memstrength.strength.aggregate import FACTOR_WEIGHTS, aggregate
from memstrength.strength.decay import calculate_decay
from memstrength.strength.factors import compute_factors
from memstrength.strength.points import points_for
from memstrength.strength.types import (
    Activity,
    ActivityMetadata,
    ActivityType,
    Difficulty,
    MemoryStrengthFactors,
    RecalculationResult,
)

__all__ = [
    "Activity",
    "ActivityMetadata",
    "ActivityType",
    "Difficulty",
    "FACTOR_WEIGHTS",
    "MemoryStrengthFactors",
    "RecalculationResult",
    "aggregate",
    "calculate_decay",
    "compute_factors",
    "points_for",
]
