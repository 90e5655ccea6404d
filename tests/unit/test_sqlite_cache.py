"""Tests for SQLiteCache - cached profiles, activity log and sync state."""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from memstrength.storage.sqlite import MIGRATIONS, SQLiteCache, SQLiteCacheError
from memstrength.strength.types import (
    Activity,
    ActivityMetadata,
    ActivityType,
    CachedProfile,
    Difficulty,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def cache():
    """Ephemeral cache for each test."""
    store = SQLiteCache(ephemeral=True)
    yield store
    store.close()


class TestSQLiteCacheInit:
    """Tests for SQLiteCache initialization."""

    def test_init_ephemeral(self):
        """Test ephemeral (in-memory) cache initialization."""
        store = SQLiteCache(ephemeral=True)
        assert store.ephemeral is True
        assert store.db_path is None
        store.close()

    def test_init_creates_parent_directories(self, tmp_path: Path):
        """Test that init creates parent directories if needed."""
        db_path = tmp_path / "nested" / "dir" / "strength.db"
        store = SQLiteCache(db_path=db_path)
        assert db_path.exists()
        store.close()

    def test_context_manager(self, tmp_path: Path):
        """Test context manager protocol."""
        with SQLiteCache(db_path=tmp_path / "strength.db") as store:
            assert store._conn is not None

    def test_migrations_applied(self, cache):
        """Schema version reaches the latest migration."""
        assert cache._get_schema_version() == max(MIGRATIONS, default=0)

    def test_pending_migration_applied(self, monkeypatch):
        """Migrations above the recorded version run once, in order."""
        monkeypatch.setattr(
            "memstrength.storage.sqlite.MIGRATIONS",
            {
                1: {
                    "description": "Add profiles.note",
                    "up": "ALTER TABLE profiles ADD COLUMN note TEXT",
                },
            },
        )

        with SQLiteCache(ephemeral=True) as store:
            assert store._get_schema_version() == 1
            columns = {row[1] for row in store._conn.execute("PRAGMA table_info(profiles)")}
            assert "note" in columns

    def test_failed_migration_raises(self, monkeypatch):
        monkeypatch.setattr(
            "memstrength.storage.sqlite.MIGRATIONS",
            {1: {"description": "Broken", "up": ["ALTER TABLE missing ADD COLUMN x TEXT"]}},
        )

        with pytest.raises(SQLiteCacheError, match="Migration v1 failed"):
            SQLiteCache(ephemeral=True)

    def test_reopen_keeps_data(self, tmp_path: Path):
        """A persistent cache survives a reopen without re-running migrations."""
        db_path = tmp_path / "strength.db"
        with SQLiteCache(db_path=db_path) as store:
            store.save_cached_profile("u1", CachedProfile(strength=40, synced=True, version=2))

        with SQLiteCache(db_path=db_path) as store:
            assert store.get_cached_profile("u1").strength == 40
            assert store._get_schema_version() == max(MIGRATIONS, default=0)


class TestProfiles:
    """Tests for cached profile operations."""

    def test_missing_profile(self, cache):
        assert cache.get_cached_profile("nobody") is None

    def test_save_and_get(self, cache):
        cache.save_cached_profile("u1", CachedProfile(strength=52, synced=True, version=7))
        profile = cache.get_cached_profile("u1")
        assert profile.strength == 52
        assert profile.synced is True
        assert profile.version == 7
        assert profile.updated_at is not None

    def test_save_overwrites(self, cache):
        cache.save_cached_profile("u1", CachedProfile(strength=10, synced=True, version=1))
        cache.save_cached_profile(
            "u1", CachedProfile(strength=12, synced=False, version=1, last_error="offline")
        )
        profile = cache.get_cached_profile("u1")
        assert profile.strength == 12
        assert profile.synced is False
        assert profile.last_error == "offline"

    def test_pending_profiles(self, cache):
        cache.save_cached_profile("u1", CachedProfile(strength=10, synced=True, updated_at=1.0))
        cache.save_cached_profile("u2", CachedProfile(strength=20, synced=False, updated_at=3.0))
        cache.save_cached_profile("u3", CachedProfile(strength=30, synced=False, updated_at=2.0))

        pending = cache.get_pending_profiles()

        assert [user_id for user_id, _ in pending] == ["u3", "u2"]
        assert cache.count_pending_profiles() == 2

    def test_closed_connection_raises(self):
        store = SQLiteCache(ephemeral=True)
        store.close()
        with pytest.raises(SQLiteCacheError):
            store.get_cached_profile("u1")


class TestActivityLog:
    """Tests for the append-only activity log."""

    def test_append_and_query_ordered(self, cache):
        """Activities come back oldest first."""
        cache.append_activity("u1", Activity(ActivityType.MEMORY_ADDED, NOW, 10))
        cache.append_activity("u1", Activity(ActivityType.DAILY_LOGIN, NOW - timedelta(days=2), 2))

        activities = cache.get_activities("u1")

        assert [a.type for a in activities] == [ActivityType.DAILY_LOGIN, ActivityType.MEMORY_ADDED]

    def test_metadata_preserved(self, cache):
        activity = Activity(
            ActivityType.GAME_COMPLETED,
            NOW,
            15,
            ActivityMetadata(game_type="matchup", difficulty=Difficulty.HARD),
        )
        cache.append_activity("u1", activity)

        stored = cache.get_activities("u1")[0]

        assert stored.metadata == activity.metadata
        assert abs((stored.timestamp - NOW).total_seconds()) < 0.001

    def test_users_isolated(self, cache):
        cache.append_activity("u1", Activity(ActivityType.MEMORY_ADDED, NOW, 10))
        cache.append_activity("u2", Activity(ActivityType.MEMORY_ADDED, NOW, 10))
        assert len(cache.get_activities("u1")) == 1
        assert cache.count_activities("u1") == 1
        assert cache.count_activities() == 2

    def test_time_window(self, cache):
        for days in (1, 10, 40):
            cache.append_activity(
                "u1", Activity(ActivityType.DAILY_LOGIN, NOW - timedelta(days=days), 2)
            )

        recent = cache.get_activities("u1", since=NOW - timedelta(days=30))
        older = cache.get_activities("u1", until=NOW - timedelta(days=5))

        assert len(recent) == 2
        assert len(older) == 2

    def test_limit_keeps_most_recent(self, cache):
        for days in (3, 2, 1):
            cache.append_activity(
                "u1", Activity(ActivityType.DAILY_LOGIN, NOW - timedelta(days=days), days)
            )

        activities = cache.get_activities("u1", limit=2)

        assert [a.value for a in activities] == [2, 1]


class TestSyncState:
    """Tests for sync bookkeeping and clear()."""

    def test_last_sync_time(self, cache):
        assert cache.get_last_sync_time() is None
        cache.set_last_sync_time(1234.5)
        assert cache.get_last_sync_time() == 1234.5

    def test_clear(self, cache):
        cache.append_activity("u1", Activity(ActivityType.MEMORY_ADDED, NOW, 10))
        cache.save_cached_profile("u1", CachedProfile(strength=10, synced=False))
        cache.set_last_sync_time()

        assert cache.clear() == 1
        assert cache.get_cached_profile("u1") is None
        assert cache.get_last_sync_time() is None

    def test_raw_schema(self, cache):
        """The base schema carries last_error and the activity type index."""
        columns = {row[1] for row in cache._conn.execute("PRAGMA table_info(profiles)")}
        assert "last_error" in columns
        indexes = {row[1] for row in cache._conn.execute("PRAGMA index_list(activities)")}
        assert "idx_activities_type" in indexes
        assert isinstance(cache._conn, sqlite3.Connection)
