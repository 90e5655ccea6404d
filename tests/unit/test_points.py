"""Unit tests for the activity point table."""

import pytest

from memstrength.strength import ActivityMetadata, ActivityType, Difficulty, points_for
from memstrength.strength.points import BASE_POINTS, DEFAULT_POINTS, round_half_up


class TestBasePoints:
    """Tests for base point values."""

    @pytest.mark.parametrize(
        "activity_type,expected",
        [
            (ActivityType.MEMORY_ADDED, 10),
            (ActivityType.MEMORY_IMPORTED, 3),
            (ActivityType.GAME_COMPLETED, 15),
            (ActivityType.MEMORY_REVIEWED, 5),
            (ActivityType.DAILY_LOGIN, 2),
            (ActivityType.GAME_PERFECT_SCORE, 25),
            (ActivityType.MEMORY_SHARED, 8),
            (ActivityType.STREAK_MAINTAINED, 12),
        ],
    )
    def test_base_points(self, activity_type, expected):
        """Each type has its documented base value."""
        assert points_for(activity_type) == expected

    def test_table_covers_every_type(self):
        """Every activity type has an entry."""
        assert set(BASE_POINTS) == set(ActivityType)

    def test_shared_without_metadata(self):
        """memory_shared with no metadata is worth 8."""
        assert points_for("memory_shared") == 8

    def test_unknown_type_uses_default(self):
        """Unknown type strings fall back to the default."""
        assert points_for("memory_deleted") == DEFAULT_POINTS == 5


class TestModifiers:
    """Tests for difficulty and streak modifiers."""

    def test_hard_game(self):
        """Hard doubles the base points."""
        metadata = ActivityMetadata(difficulty=Difficulty.HARD)
        assert points_for(ActivityType.GAME_COMPLETED, metadata) == 30

    def test_medium_rounds_half_up(self):
        """5 x 1.5 = 7.5 rounds up to 8."""
        metadata = ActivityMetadata(difficulty=Difficulty.MEDIUM)
        assert points_for(ActivityType.MEMORY_REVIEWED, metadata) == 8

    def test_easy_is_unchanged(self):
        """Easy keeps the base points."""
        metadata = ActivityMetadata(difficulty=Difficulty.EASY)
        assert points_for(ActivityType.GAME_PERFECT_SCORE, metadata) == 25

    def test_streak_bonus_capped(self):
        """Streak bonus is capped at 10."""
        metadata = ActivityMetadata(streak_days=20)
        assert points_for("daily_login", metadata) == 12

    def test_streak_bonus_below_cap(self):
        """Short streaks add their length."""
        metadata = ActivityMetadata(streak_days=3)
        assert points_for(ActivityType.STREAK_MAINTAINED, metadata) == 15

    def test_multiplier_applies_before_streak(self):
        """Difficulty scales base points only; the streak bonus is added after."""
        metadata = ActivityMetadata(difficulty=Difficulty.HARD, streak_days=4)
        assert points_for(ActivityType.DAILY_LOGIN, metadata) == 2 * 2 + 4


class TestRoundHalfUp:
    """Tests for round_half_up."""

    def test_half_rounds_up(self):
        """Halves round away from the even neighbour."""
        assert round_half_up(2.5) == 3
        assert round_half_up(52.5) == 53

    def test_below_half_rounds_down(self):
        """Values below .5 round down."""
        assert round_half_up(52.115) == 52
