"""Configuration settings for the memstrength server.

This module provides Pydantic Settings for configuration management with:
- Environment variable support (MEMSTRENGTH_ prefix)
- CLI argument override support
- Type validation and defaults
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrengthSettings(BaseSettings):
    """Configuration settings for the memstrength server.

    Settings are loaded from environment variables with the MEMSTRENGTH_ prefix.
    CLI arguments can override these settings when provided.

    Attributes:
        sqlite_path: Path to the local cache database (default: ~/.memstrength/strength.db)
        remote_url: Remote store URL; unset runs offline only
        remote_api_key: Remote store API key
        remote_table: Remote table holding strength records (default: profiles)
        remote_timeout: Remote request timeout in seconds (default: 10)
        remote_max_retries: Remote retry attempts (default: 3)
        activity_window_days: Days of activity log scored per recalculation (default: 30)
        conflict_retries: Recompute attempts after concurrent updates (default: 3)
        log_level: Logging level (default: INFO)

    Example:
        >>> settings = StrengthSettings()
        >>> print(settings.activity_window_days)
        30

        >>> # Override via environment
        >>> # MEMSTRENGTH_REMOTE_URL=https://db.example.com
        >>> settings = StrengthSettings()
        >>> print(settings.remote_url)
        https://db.example.com
    """

    model_config = SettingsConfigDict(
        env_prefix="MEMSTRENGTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Local cache
    sqlite_path: Optional[Path] = Field(
        default=None,
        description="Path to SQLite database (default: ~/.memstrength/strength.db)",
    )

    # Remote store
    remote_url: Optional[str] = Field(
        default=None,
        description="Remote store base URL (unset runs offline only)",
    )
    remote_api_key: Optional[str] = Field(
        default=None,
        description="Remote store API key",
    )
    remote_table: str = Field(
        default="profiles",
        description="Remote table holding strength records",
    )
    remote_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Remote request timeout in seconds",
    )
    remote_max_retries: int = Field(
        default=3,
        ge=1,
        description="Remote retry attempts for connection errors",
    )

    # Scoring
    activity_window_days: int = Field(
        default=30,
        ge=1,
        description="Days of activity log scored per recalculation",
    )
    conflict_retries: int = Field(
        default=3,
        ge=1,
        description="Recompute attempts after a concurrent update",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    def get_sqlite_path(self) -> Optional[Path]:
        """Get the SQLite path, resolving to default if not set."""
        if self.sqlite_path:
            return self.sqlite_path.expanduser().resolve()
        return None
