"""Storage layer for memstrength."""

from memstrength.storage.bridge import StrengthStore, StrengthStoreError
from memstrength.storage.remote import (
    RemoteStoreError,
    RemoteStrengthClient,
    StrengthConflictError,
)
from memstrength.storage.sqlite import SQLiteCache, SQLiteCacheError

__all__ = [
    "RemoteStoreError",
    "RemoteStrengthClient",
    "SQLiteCache",
    "SQLiteCacheError",
    "StrengthConflictError",
    "StrengthStore",
    "StrengthStoreError",
]
