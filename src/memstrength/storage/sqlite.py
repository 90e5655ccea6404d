"""SQLite storage layer for the offline strength cache and the activity log.

This module provides a SQLite-based storage layer with support for:
- Cached strength profiles per user (strength, version, synced flag)
- Append-only activity log keyed by user and ordered by timestamp
- Sync bookkeeping (last successful reconciliation)
- Schema versioning and migrations

The SQLiteCache class manages all SQLite operations.
"""

import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from memstrength.strength.types import Activity, ActivityMetadata, ActivityType, CachedProfile

logger = logging.getLogger(__name__)

# Schema version migrations, applied in order on top of the base schema
# Each migration has a description and up SQL (can be a list of statements)
MIGRATIONS: dict[int, dict[str, Any]] = {}


class SQLiteCacheError(Exception):
    """Custom exception for local cache errors."""

    pass


class SQLiteCache:
    """SQLite storage for cached strength profiles and the activity log.

    Args:
        db_path: Path to SQLite database file.
                 Defaults to ~/.memstrength/strength.db
        ephemeral: If True, use in-memory storage for testing (default: False)

    Attributes:
        db_path: Path to database file (None if ephemeral)
        ephemeral: Whether using ephemeral storage
        _conn: SQLite connection instance
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        ephemeral: bool = False,
    ):
        """Initialize SQLiteCache with persistent or ephemeral storage.

        Raises:
            SQLiteCacheError: If database initialization fails
        """
        self.ephemeral = ephemeral

        if ephemeral:
            self.db_path = None
        else:
            self.db_path = db_path or Path.home() / ".memstrength" / "strength.db"

        try:
            if ephemeral:
                self._conn = sqlite3.connect(":memory:", check_same_thread=False)
            else:
                if self.db_path is not None:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)

            self._conn.row_factory = sqlite3.Row
            self._init_schema()

        except (sqlite3.Error, OSError) as e:
            raise SQLiteCacheError(f"Failed to initialize SQLite cache: {e}") from e

    def _init_schema(self) -> None:
        """Create the base tables and indexes, then run migrations.

        Tables:
        - profiles: Last known strength per user
        - activities: Append-only activity log
        - sync_state: Key/value sync bookkeeping

        Raises:
            SQLiteCacheError: If schema initialization fails
        """
        try:
            cursor = self._conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    strength INTEGER NOT NULL DEFAULT 0,
                    version INTEGER,
                    synced INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL NOT NULL,
                    last_error TEXT
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_profiles_synced
                ON profiles(synced)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    value REAL NOT NULL DEFAULT 0,
                    metadata TEXT,
                    created_at REAL NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_activities_user_timestamp
                ON activities(user_id, timestamp)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_activities_type
                ON activities(user_id, type)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            self._conn.commit()

            self._run_migrations()

        except sqlite3.Error as e:
            self._conn.rollback()
            raise SQLiteCacheError(f"Failed to initialize schema: {e}") from e

    def _get_schema_version(self) -> int:
        """Get the current schema version (0 if no migrations applied)."""
        cursor = self._conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at REAL NOT NULL,
                description TEXT
            )
        """)
        self._conn.commit()
        cursor.execute("SELECT MAX(version) FROM schema_version")
        result = cursor.fetchone()
        return result[0] if result and result[0] is not None else 0

    def _run_migrations(self) -> None:
        """Run any pending schema migrations, each in its own transaction.

        Raises:
            SQLiteCacheError: If a migration fails
        """
        current_version = self._get_schema_version()
        max_version = max(MIGRATIONS.keys()) if MIGRATIONS else 0

        if current_version >= max_version:
            return

        logger.info(f"Running migrations from v{current_version} to v{max_version}")

        for version in range(current_version + 1, max_version + 1):
            if version not in MIGRATIONS:
                continue

            migration = MIGRATIONS[version]
            description = migration.get("description", f"Migration {version}")
            up_sql = migration.get("up", [])

            if isinstance(up_sql, str):
                up_sql = [up_sql]

            try:
                cursor = self._conn.cursor()

                for sql in up_sql:
                    cursor.execute(sql)

                cursor.execute(
                    "INSERT INTO schema_version (version, applied_at, description) VALUES (?, ?, ?)",
                    (version, time.time(), description),
                )

                self._conn.commit()
                logger.info(f"Applied migration v{version}: {description}")

            except sqlite3.Error as e:
                self._conn.rollback()
                raise SQLiteCacheError(
                    f"Migration v{version} failed ({description}): {e}"
                ) from e

    # =========================================================================
    # Profile Operations
    # =========================================================================

    def get_cached_profile(self, user_id: str) -> Optional[CachedProfile]:
        """Get the cached strength profile for a user.

        Returns:
            CachedProfile or None if the user has no cached value

        Raises:
            SQLiteCacheError: If the read fails
        """
        try:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                SELECT strength, version, synced, updated_at, last_error
                FROM profiles WHERE user_id = ?
                """,
                (user_id,),
            )
            row = cursor.fetchone()

            if row is None:
                return None

            return self._row_to_profile(row)

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to get cached profile: {e}") from e

    def save_cached_profile(self, user_id: str, profile: CachedProfile) -> None:
        """Insert or replace the cached profile for a user.

        Raises:
            SQLiteCacheError: If the write fails
        """
        try:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT INTO profiles (user_id, strength, version, synced, updated_at, last_error)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    strength = excluded.strength,
                    version = excluded.version,
                    synced = excluded.synced,
                    updated_at = excluded.updated_at,
                    last_error = excluded.last_error
                """,
                (
                    user_id,
                    profile.strength,
                    profile.version,
                    1 if profile.synced else 0,
                    profile.updated_at if profile.updated_at is not None else time.time(),
                    profile.last_error,
                ),
            )
            self._conn.commit()

        except sqlite3.Error as e:
            self._conn.rollback()
            raise SQLiteCacheError(f"Failed to save cached profile: {e}") from e

    def get_pending_profiles(self, limit: int = 100) -> list[tuple[str, CachedProfile]]:
        """Get cached profiles whose value has not reached the remote store.

        Returns:
            List of (user_id, CachedProfile), oldest first

        Raises:
            SQLiteCacheError: If the read fails
        """
        try:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                SELECT user_id, strength, version, synced, updated_at, last_error
                FROM profiles
                WHERE synced = 0
                ORDER BY updated_at
                LIMIT ?
                """,
                (limit,),
            )
            return [(row["user_id"], self._row_to_profile(row)) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to get pending profiles: {e}") from e

    def count_pending_profiles(self) -> int:
        """Count cached profiles that are not synced."""
        try:
            cursor = self._conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM profiles WHERE synced = 0")
            result = cursor.fetchone()
            return int(result[0]) if result else 0

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to count pending profiles: {e}") from e

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> CachedProfile:
        return CachedProfile(
            strength=row["strength"],
            synced=bool(row["synced"]),
            version=row["version"],
            updated_at=row["updated_at"],
            last_error=row["last_error"],
        )

    # =========================================================================
    # Activity Log Operations
    # =========================================================================

    def append_activity(self, user_id: str, activity: Activity) -> int:
        """Append an activity to the user's log.

        Returns:
            The ID of the created log entry

        Raises:
            SQLiteCacheError: If the insert fails
        """
        try:
            cursor = self._conn.cursor()
            metadata_json = json.dumps(activity.metadata.to_dict()) if activity.metadata else None

            cursor.execute(
                """
                INSERT INTO activities (user_id, type, timestamp, value, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    activity.type.value,
                    activity.timestamp.timestamp(),
                    activity.value,
                    metadata_json,
                    time.time(),
                ),
            )

            activity_id = cursor.lastrowid
            self._conn.commit()
            return activity_id  # type: ignore[return-value]

        except sqlite3.Error as e:
            self._conn.rollback()
            raise SQLiteCacheError(f"Failed to append activity: {e}") from e

    def get_activities(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Activity]:
        """Query a user's activity log.

        Args:
            user_id: Owner of the activities
            since: Only activities at or after this time (optional)
            until: Only activities at or before this time (optional)
            limit: Keep only the most recent N activities (optional)

        Returns:
            Activities in ascending timestamp order

        Raises:
            SQLiteCacheError: If the query fails
        """
        try:
            cursor = self._conn.cursor()

            query = """
                SELECT type, timestamp, value, metadata
                FROM activities
                WHERE user_id = ?
            """
            params: list[Any] = [user_id]

            if since is not None:
                query += " AND timestamp >= ?"
                params.append(since.timestamp())

            if until is not None:
                query += " AND timestamp <= ?"
                params.append(until.timestamp())

            query += " ORDER BY timestamp DESC, id DESC"

            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)

            cursor.execute(query, params)
            rows = cursor.fetchall()

            activities = [
                Activity(
                    type=ActivityType(row["type"]),
                    timestamp=datetime.fromtimestamp(row["timestamp"], tz=timezone.utc),
                    value=row["value"],
                    metadata=ActivityMetadata.from_dict(
                        json.loads(row["metadata"]) if row["metadata"] else None
                    ),
                )
                for row in rows
            ]
            activities.reverse()
            return activities

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to get activities: {e}") from e

    def count_activities(self, user_id: Optional[str] = None) -> int:
        """Count logged activities, optionally for one user."""
        try:
            cursor = self._conn.cursor()
            if user_id is None:
                cursor.execute("SELECT COUNT(*) FROM activities")
            else:
                cursor.execute("SELECT COUNT(*) FROM activities WHERE user_id = ?", (user_id,))
            result = cursor.fetchone()
            return int(result[0]) if result else 0

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to count activities: {e}") from e

    # =========================================================================
    # Sync Bookkeeping
    # =========================================================================

    def get_last_sync_time(self) -> Optional[float]:
        """Epoch seconds of the last clean reconciliation, if any."""
        try:
            cursor = self._conn.cursor()
            cursor.execute("SELECT value FROM sync_state WHERE key = 'last_sync_time'")
            row = cursor.fetchone()
            return float(row["value"]) if row else None

        except sqlite3.Error as e:
            raise SQLiteCacheError(f"Failed to get last sync time: {e}") from e

    def set_last_sync_time(self, when: Optional[float] = None) -> None:
        """Record a clean reconciliation (default: now)."""
        try:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                INSERT INTO sync_state (key, value) VALUES ('last_sync_time', ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (str(when if when is not None else time.time()),),
            )
            self._conn.commit()

        except sqlite3.Error as e:
            self._conn.rollback()
            raise SQLiteCacheError(f"Failed to set last sync time: {e}") from e

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def clear(self) -> int:
        """Delete all cached profiles, activities and sync state.

        Returns:
            Number of activities deleted

        Raises:
            SQLiteCacheError: If clear operation fails
        """
        try:
            cursor = self._conn.cursor()

            cursor.execute("SELECT COUNT(*) FROM activities")
            result = cursor.fetchone()
            count = int(result[0]) if result else 0

            cursor.execute("DELETE FROM activities")
            cursor.execute("DELETE FROM profiles")
            cursor.execute("DELETE FROM sync_state")

            self._conn.commit()
            return count

        except sqlite3.Error as e:
            self._conn.rollback()
            raise SQLiteCacheError(f"Failed to clear cache: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()

    def __enter__(self) -> "SQLiteCache":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
