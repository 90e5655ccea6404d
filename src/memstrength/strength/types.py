"""Core data types for the memory strength engine.

This module defines the data structures used throughout the engine:
- ActivityType: Closed enum of engagement events
- Difficulty: Difficulty levels carried by game and review activities
- ActivityMetadata: Optional details of an activity
- Activity: Immutable record of one user action
- MemoryStrengthFactors: The eight normalized sub-scores
- StrengthRecord / CachedProfile: Persisted strength values
- Result types returned by the storage bridge and operations
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ActivityType(Enum):
    """Types of activities that feed the strength calculation.

    - MEMORY_ADDED: User recorded a new memory
    - MEMORY_IMPORTED: Memory imported from an external source
    - GAME_COMPLETED: A memory game was finished
    - MEMORY_REVIEWED: An existing memory was revisited
    - DAILY_LOGIN: First login of the day
    - GAME_PERFECT_SCORE: A game was finished without mistakes
    - MEMORY_SHARED: A memory was shared with someone else
    - STREAK_MAINTAINED: A daily streak was extended
    """
    MEMORY_ADDED = "memory_added"
    MEMORY_IMPORTED = "memory_imported"
    GAME_COMPLETED = "game_completed"
    MEMORY_REVIEWED = "memory_reviewed"
    DAILY_LOGIN = "daily_login"
    GAME_PERFECT_SCORE = "game_perfect_score"
    MEMORY_SHARED = "memory_shared"
    STREAK_MAINTAINED = "streak_maintained"


class Difficulty(Enum):
    """Difficulty of a game or review activity."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# Import source that counts towards social engagement
COLLABORATION_SOURCE = "collaboration"


def _to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC, treating naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ActivityMetadata:
    """Optional details attached to an activity.

    Attributes:
        game_type: Which game produced the activity
        memory_id: ID of the memory the activity refers to
        import_source: Where imported content came from ('collaboration' counts as social)
        streak_days: Length of the current daily streak (>= 0)
        difficulty: Difficulty of the game or review

    Raises:
        ValueError: If streak_days is negative or difficulty is unknown
    """
    game_type: Optional[str] = None
    memory_id: Optional[str] = None
    import_source: Optional[str] = None
    streak_days: Optional[int] = None
    difficulty: Optional[Difficulty] = None

    def __post_init__(self) -> None:
        """Validate and coerce metadata fields."""
        if isinstance(self.difficulty, str):
            object.__setattr__(self, "difficulty", Difficulty(self.difficulty))

        if self.streak_days is not None and self.streak_days < 0:
            raise ValueError(f"streak_days must be >= 0, got {self.streak_days}")

    def present_fields(self) -> list[str]:
        """Names of the fields that are set."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the set fields to a JSON-compatible dict."""
        data: dict[str, Any] = {}
        for name in self.present_fields():
            value = getattr(self, name)
            data[name] = value.value if isinstance(value, Difficulty) else value
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["ActivityMetadata"]:
        """Build metadata from a dict, accepting camelCase keys.

        Returns:
            ActivityMetadata, or None if data is empty
        """
        if not data:
            return None
        aliases = {
            "gameType": "game_type",
            "memoryId": "memory_id",
            "importSource": "import_source",
            "streakDays": "streak_days",
        }
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown activity metadata field '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class Activity:
    """One immutable record of a user action relevant to strength scoring.

    Attributes:
        type: What the user did (ActivityType enum)
        timestamp: When it happened (normalized to UTC)
        value: Points or quality value of the activity (>= 0)
        metadata: Optional details (any field may accompany any type)

    Raises:
        ValueError: If value is negative or the type is unknown
    """
    type: ActivityType
    timestamp: datetime
    value: float = 0.0
    metadata: Optional[ActivityMetadata] = None

    def __post_init__(self) -> None:
        """Validate activity fields after initialization."""
        if isinstance(self.type, str):
            object.__setattr__(self, "type", ActivityType(self.type))

        object.__setattr__(self, "timestamp", _to_utc(self.timestamp))

        if self.value < 0:
            raise ValueError(f"Activity value must be >= 0, got {self.value}")

    @property
    def difficulty(self) -> Optional[Difficulty]:
        """Difficulty from metadata, if any."""
        return self.metadata.difficulty if self.metadata else None

    @property
    def import_source(self) -> Optional[str]:
        """Import source from metadata, if any."""
        return self.metadata.import_source if self.metadata else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Activity":
        """Build an Activity from its dict form.

        Accepts an ISO-8601 string or a datetime for timestamp; a missing
        timestamp means now.
        """
        timestamp = data.get("timestamp")
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        elif isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))

        return cls(
            type=ActivityType(data["type"]),
            timestamp=timestamp,
            value=float(data.get("value", 0.0)),
            metadata=ActivityMetadata.from_dict(data.get("metadata")),
        )


@dataclass
class MemoryStrengthFactors:
    """The eight normalized sub-scores, each in [0, 100].

    Attributes:
        consistency: How regularly the user engages
        activity_count: Volume of activities
        recent_activity: Recency of the last activity
        engagement_depth: Average value of activities
        activity_diversity: Variety of activity types
        progress_streak: Longest run of consecutive active days
        challenge_level: Difficulty of completed games and reviews
        social_engagement: Sharing and collaboration
    """
    consistency: float = 0.0
    activity_count: float = 0.0
    recent_activity: float = 0.0
    engagement_depth: float = 0.0
    activity_diversity: float = 0.0
    progress_streak: float = 0.0
    challenge_level: float = 0.0
    social_engagement: float = 0.0

    def as_dict(self) -> dict[str, float]:
        """Return the factors as a name -> value mapping."""
        return asdict(self)


@dataclass
class StrengthRecord:
    """The canonical strength value held by the remote store.

    Attributes:
        strength: Strength value in [0, 100]
        version: Monotonic version used for compare-and-swap writes
    """
    strength: int
    version: int


@dataclass
class CachedProfile:
    """Last known strength value in the local cache.

    Attributes:
        strength: Strength value in [0, 100]
        synced: True if the value is known to match the remote store
        version: Remote version the value was based on (None if never synced)
        updated_at: When the cache entry was last written (epoch seconds)
        last_error: Why the value is still pending, if it is
    """
    strength: int
    synced: bool
    version: Optional[int] = None
    updated_at: Optional[float] = None
    last_error: Optional[str] = None


@dataclass
class StrengthReading:
    """Result of reading a user's strength.

    Attributes:
        strength: Strength value in [0, 100]
        source: Where the value came from ('remote', 'cache' or 'default')
        version: Remote version the value corresponds to, if known
        synced: Whether the value is known to match the remote store
    """
    strength: int
    source: str
    version: Optional[int] = None
    synced: bool = True


@dataclass
class WriteResult:
    """Result of persisting a strength value.

    Attributes:
        strength: The value that was written
        synced: True if the remote write succeeded
        version: New remote version (None if the remote write failed)
        error: Remote error message if the value is pending
    """
    strength: int
    synced: bool
    version: Optional[int] = None
    error: Optional[str] = None


@dataclass
class RecalculationResult:
    """Result of a recalculation after a new activity.

    Attributes:
        strength: New strength in [0, 100]
        previous_strength: Strength read before the recalculation
        base_increase: Aggregated increase in [0.5, 4.0]
        decay: Inactivity penalty (>= 0)
        factors: Factors computed over the activity window
        synced: Whether the new value reached the remote store
        attempts: Number of read/compute/write rounds (> 1 after conflicts)
    """
    strength: int
    previous_strength: int
    base_increase: float
    decay: float
    factors: MemoryStrengthFactors
    synced: bool
    attempts: int = 1


@dataclass
class ReconcileResult:
    """Result of pushing pending cached values to the remote store.

    Attributes:
        pushed: Users whose pending value reached the remote store
        adopted: Users whose cache took the remote value after a conflict
        pending: Users still pending after the pass
        errors: Error messages collected along the way
    """
    pushed: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if nothing is left pending and no errors occurred."""
        return not self.pending and not self.errors


@dataclass
class SyncStatus:
    """Summary of the local cache's sync state.

    Attributes:
        remote_configured: Whether a remote store is attached
        remote_available: Whether the last remote call succeeded
        pending_changes: Number of cached values not yet synced
        last_sync_time: Epoch seconds of the last clean reconciliation
    """
    remote_configured: bool
    pending_changes: int
    remote_available: bool = False
    last_sync_time: Optional[float] = None
