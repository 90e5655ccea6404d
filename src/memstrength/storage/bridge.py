"""Strength store bridging the canonical remote value and the offline cache.

Key principles:
- The remote store is the source of truth for strength
- Every write is mirrored into the local cache, marked synced or pending
- Reads fall back to the cache, then to 0, when the remote is unavailable
- Pending values are pushed later by reconcile()
- The local SQLite database also holds the append-only activity log
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from memstrength.storage.remote import (
    RemoteStoreError,
    RemoteStrengthClient,
    StrengthConflictError,
)
from memstrength.storage.sqlite import SQLiteCache, SQLiteCacheError
from memstrength.strength.types import (
    Activity,
    CachedProfile,
    ReconcileResult,
    StrengthReading,
    SyncStatus,
    WriteResult,
)

logger = logging.getLogger(__name__)


class StrengthStoreError(Exception):
    """Custom exception for strength store initialization."""

    pass


class StrengthStore:
    """Remote-first strength persistence with a local cache fallback.

    Args:
        cache: SQLiteCache for cached profiles and the activity log
        remote: RemoteStrengthClient, or None to run offline only

    Example:
        >>> async with await StrengthStore.create(ephemeral=True) as store:
        ...     reading = await store.read("user-1")
        ...     await store.write("user-1", 42, expected_version=reading.version)
    """

    def __init__(
        self,
        cache: SQLiteCache,
        remote: Optional[RemoteStrengthClient] = None,
    ):
        self._cache = cache
        self._remote = remote
        self._remote_available = remote is not None

    @classmethod
    async def create(
        cls,
        sqlite_path: Optional[Path] = None,
        remote_url: Optional[str] = None,
        remote_api_key: Optional[str] = None,
        remote_table: str = "profiles",
        remote_timeout: float = 10.0,
        remote_max_retries: int = 3,
        ephemeral: bool = False,
    ) -> "StrengthStore":
        """Create a StrengthStore with new component instances.

        Args:
            sqlite_path: Path to SQLite database (default: ~/.memstrength/strength.db)
            remote_url: Remote store URL (None runs offline only)
            remote_api_key: Remote store API key
            remote_table: Remote table name (default: "profiles")
            remote_timeout: Remote request timeout in seconds
            remote_max_retries: Remote retry attempts
            ephemeral: Use in-memory SQLite for testing (default: False)

        Returns:
            Configured StrengthStore instance

        Raises:
            StrengthStoreError: If cache initialization fails
        """
        try:
            cache = SQLiteCache(db_path=sqlite_path, ephemeral=ephemeral)
        except SQLiteCacheError as e:
            raise StrengthStoreError(f"Failed to create StrengthStore: {e}") from e

        remote = None
        if remote_url:
            remote = RemoteStrengthClient(
                base_url=remote_url,
                api_key=remote_api_key,
                table=remote_table,
                timeout=remote_timeout,
                max_retries=remote_max_retries,
            )

        return cls(cache=cache, remote=remote)

    async def close(self) -> None:
        """Close the remote client and the cache."""
        if self._remote is not None:
            await self._remote.close()
        self._cache.close()

    async def __aenter__(self) -> "StrengthStore":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - close all resources."""
        await self.close()

    @property
    def remote_configured(self) -> bool:
        """Whether a remote store is attached."""
        return self._remote is not None

    # =========================================================================
    # Strength Operations
    # =========================================================================

    def _read_cache(self, user_id: str) -> Optional[CachedProfile]:
        try:
            return self._cache.get_cached_profile(user_id)
        except SQLiteCacheError as e:
            logger.warning(f"Local cache unavailable reading {user_id}: {e}")
            return None

    def _save_cache(self, user_id: str, profile: CachedProfile) -> bool:
        try:
            self._cache.save_cached_profile(user_id, profile)
            return True
        except SQLiteCacheError as e:
            logger.warning(f"Local cache unavailable writing {user_id}: {e}")
            return False

    async def read(self, user_id: str) -> StrengthReading:
        """Read a user's strength, remote first.

        Falls back to the cached value when the remote store fails or is
        not configured, and to 0 when neither has a value. A pending cached
        value computed from the current remote version wins over the remote
        value, so offline progress carries into the next write. Never raises.

        Args:
            user_id: The user's ID

        Returns:
            StrengthReading with the value and where it came from
        """
        if self._remote is not None:
            try:
                record = await self._remote.get_strength(user_id)
                self._remote_available = True
            except RemoteStoreError as e:
                logger.warning(f"Remote strength read failed for {user_id}, using cache: {e}")
                self._remote_available = False
            else:
                cached = self._read_cache(user_id)
                remote_version = record.version if record is not None else None

                # A pending value based on the current remote version is newer
                if cached is not None and not cached.synced and cached.version == remote_version:
                    return StrengthReading(
                        strength=cached.strength,
                        source="cache",
                        version=remote_version,
                        synced=False,
                    )

                if record is None:
                    return StrengthReading(strength=0, source="remote", version=None)

                if cached is None or cached.synced:
                    self._save_cache(
                        user_id,
                        CachedProfile(
                            strength=record.strength,
                            synced=True,
                            version=record.version,
                        ),
                    )
                return StrengthReading(
                    strength=record.strength,
                    source="remote",
                    version=record.version,
                )

        cached = self._read_cache(user_id)
        if cached is not None:
            return StrengthReading(
                strength=cached.strength,
                source="cache",
                version=cached.version,
                synced=cached.synced,
            )

        return StrengthReading(strength=0, source="default", version=None, synced=False)

    async def write(
        self,
        user_id: str,
        strength: int,
        expected_version: Optional[int] = None,
    ) -> WriteResult:
        """Write-through a new strength value.

        Tries the remote store with a compare-and-swap on expected_version,
        then mirrors the value into the cache as synced (remote success) or
        pending (remote failure).

        Args:
            user_id: The user's ID
            strength: New strength in [0, 100]
            expected_version: Remote version the value was computed from

        Returns:
            WriteResult describing whether the value reached the remote store

        Raises:
            StrengthConflictError: If the remote version changed since it was
                read; nothing is written in that case
        """
        error: Optional[str] = None
        version: Optional[int] = None

        if self._remote is None:
            error = "Remote store not configured"
        else:
            try:
                version = await self._remote.set_strength(user_id, strength, expected_version)
                self._remote_available = True
            except StrengthConflictError:
                raise
            except RemoteStoreError as e:
                logger.warning(f"Remote strength write failed for {user_id}, keeping pending: {e}")
                self._remote_available = False
                error = str(e)

        synced = version is not None
        self._save_cache(
            user_id,
            CachedProfile(
                strength=strength,
                synced=synced,
                version=version if synced else expected_version,
                last_error=error,
            ),
        )

        logger.debug(f"Strength for {user_id} written: {strength} (synced={synced})")
        return WriteResult(strength=strength, synced=synced, version=version, error=error)

    def keep_pending(
        self,
        user_id: str,
        strength: int,
        expected_version: Optional[int],
        error: str,
    ) -> WriteResult:
        """Store a value in the cache only, pending a later reconcile()."""
        self._save_cache(
            user_id,
            CachedProfile(
                strength=strength,
                synced=False,
                version=expected_version,
                last_error=error,
            ),
        )
        return WriteResult(strength=strength, synced=False, version=None, error=error)

    async def reconcile(self, limit: int = 100) -> ReconcileResult:
        """Push pending cached values to the remote store.

        A conflicting remote version means another writer got there first;
        the remote (canonical) value is adopted into the cache.

        Args:
            limit: Maximum number of pending entries to process

        Returns:
            ReconcileResult listing pushed, adopted and still-pending users
        """
        result = ReconcileResult()

        try:
            pending = self._cache.get_pending_profiles(limit=limit)
        except SQLiteCacheError as e:
            logger.warning(f"Local cache unavailable during reconcile: {e}")
            result.errors.append(str(e))
            return result

        if self._remote is None:
            result.pending = [user_id for user_id, _ in pending]
            if pending:
                result.errors.append("Remote store not configured")
            return result

        for user_id, profile in pending:
            try:
                version = await self._remote.set_strength(
                    user_id, profile.strength, profile.version
                )
                self._save_cache(
                    user_id,
                    CachedProfile(strength=profile.strength, synced=True, version=version),
                )
                result.pushed.append(user_id)

            except StrengthConflictError:
                try:
                    record = await self._remote.get_strength(user_id)
                except RemoteStoreError as e:
                    result.pending.append(user_id)
                    result.errors.append(f"{user_id}: {e}")
                    continue

                if record is None:
                    result.pending.append(user_id)
                    result.errors.append(f"{user_id}: remote record disappeared")
                    continue

                logger.info(
                    f"Remote strength for {user_id} changed while offline; "
                    f"adopting remote value {record.strength}"
                )
                self._save_cache(
                    user_id,
                    CachedProfile(strength=record.strength, synced=True, version=record.version),
                )
                result.adopted.append(user_id)

            except RemoteStoreError as e:
                logger.warning(f"Reconcile push failed for {user_id}: {e}")
                result.pending.append(user_id)
                result.errors.append(f"{user_id}: {e}")

        if result.success:
            try:
                self._cache.set_last_sync_time()
            except SQLiteCacheError as e:
                logger.warning(f"Could not record sync time: {e}")

        return result

    def sync_status(self) -> SyncStatus:
        """Summarize pending changes and the last clean reconciliation."""
        try:
            pending = self._cache.count_pending_profiles()
            last_sync = self._cache.get_last_sync_time()
        except SQLiteCacheError as e:
            logger.warning(f"Local cache unavailable reading sync status: {e}")
            pending, last_sync = 0, None

        return SyncStatus(
            remote_configured=self.remote_configured,
            remote_available=self._remote_available,
            pending_changes=pending,
            last_sync_time=last_sync,
        )

    # =========================================================================
    # Activity Log
    # =========================================================================

    def append_activity(self, user_id: str, activity: Activity) -> Optional[int]:
        """Append to the activity log; returns None if the cache is unavailable."""
        try:
            return self._cache.append_activity(user_id, activity)
        except SQLiteCacheError as e:
            logger.warning(f"Could not log activity for {user_id}: {e}")
            return None

    def get_activities(
        self,
        user_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Activity]:
        """Query the activity log; returns [] if the cache is unavailable."""
        try:
            return self._cache.get_activities(user_id, since=since, until=until, limit=limit)
        except SQLiteCacheError as e:
            logger.warning(f"Could not read activity log for {user_id}: {e}")
            return []
