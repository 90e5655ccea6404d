"""Integration tests for the memstrength MCP server.

These tests verify that the MCP server exposes the strength operations as
tools and that the tools work end-to-end against an offline store.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from memstrength.__main__ import (
    activity_history,
    activity_points,
    call_tool_directly,
    parse_arguments,
    strength_read,
    strength_recalculate,
    strength_reconcile,
    strength_sync_status,
)
from memstrength.config import StrengthSettings
from memstrength.storage.bridge import StrengthStore
from memstrength.storage.sqlite import SQLiteCache


def hours_ago(hours: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()


@pytest.fixture
def ephemeral_store():
    """Create an offline StrengthStore backed by in-memory SQLite."""
    cache = SQLiteCache(ephemeral=True)
    store = StrengthStore(cache=cache)
    yield store
    cache.close()


class TestStrengthSettings:
    """Tests for StrengthSettings configuration."""

    def test_default_settings(self):
        """Test that default settings are applied correctly."""
        settings = StrengthSettings()

        assert settings.remote_url is None
        assert settings.remote_table == "profiles"
        assert settings.remote_timeout == 10.0
        assert settings.remote_max_retries == 3
        assert settings.activity_window_days == 30
        assert settings.conflict_retries == 3
        assert settings.log_level == "INFO"
        assert settings.get_sqlite_path() is None

    def test_env_override(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("MEMSTRENGTH_REMOTE_URL", "https://db.example.com")
        monkeypatch.setenv("MEMSTRENGTH_ACTIVITY_WINDOW_DAYS", "14")
        monkeypatch.setenv("MEMSTRENGTH_LOG_LEVEL", "DEBUG")

        settings = StrengthSettings()

        assert settings.remote_url == "https://db.example.com"
        assert settings.activity_window_days == 14
        assert settings.log_level == "DEBUG"

    def test_validation(self):
        """Test that numeric settings are validated."""
        with pytest.raises(ValueError):
            StrengthSettings(activity_window_days=0)

        with pytest.raises(ValueError):
            StrengthSettings(remote_timeout=0)

    def test_cli_overrides_env(self, monkeypatch):
        """CLI arguments take precedence over environment variables."""
        monkeypatch.setenv("MEMSTRENGTH_REMOTE_TABLE", "users")
        monkeypatch.setenv("MEMSTRENGTH_CONFLICT_RETRIES", "5")

        args = parse_arguments(["--remote-table", "accounts", "--window-days", "7"])

        assert args.remote_table == "accounts"
        assert args.window_days == 7
        assert args.conflict_retries == 5
        assert args.call is None


class TestMCPToolHandlers:
    """Tests for MCP tool handler functions."""

    @pytest.mark.asyncio
    async def test_activity_points(self):
        result = await activity_points(
            "game_completed", {"difficulty": "hard", "streak_days": 3}
        )

        assert result == {"success": True, "points": 33}

    @pytest.mark.asyncio
    async def test_activity_points_unknown_type(self):
        result = await activity_points("mystery")
        assert result["points"] == 5

    @pytest.mark.asyncio
    async def test_activity_points_bad_metadata(self):
        result = await activity_points("daily_login", {"colour": "blue"})

        assert result["success"] is False
        assert "Invalid metadata" in result["error"]

    @pytest.mark.asyncio
    async def test_recalculate_success(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            result = await strength_recalculate(
                user_id="u1",
                activity={"type": "memory_added", "timestamp": hours_ago(2), "value": 10},
            )

        assert result["success"] is True
        assert result["strength"] == 2
        assert result["previous_strength"] == 0
        assert result["synced"] is False
        assert set(result["factors"]) == {
            "consistency",
            "activity_count",
            "recent_activity",
            "engagement_depth",
            "activity_diversity",
            "progress_streak",
            "challenge_level",
            "social_engagement",
        }

    @pytest.mark.asyncio
    async def test_recalculate_invalid_activity(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            result = await strength_recalculate(
                user_id="u1",
                activity={"type": "daily_login", "value": -1},
            )

        assert result["success"] is False
        assert "Invalid activity" in result["error"]

    @pytest.mark.asyncio
    async def test_recalculate_game_with_streak(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            result = await strength_recalculate(
                user_id="u1",
                activity={
                    "type": "game_completed",
                    "timestamp": hours_ago(1),
                    "value": 15,
                    "metadata": {"gameType": "echo-echo", "difficulty": "medium", "streakDays": 3},
                },
            )
            history = await activity_history(user_id="u1")

        assert result["success"] is True
        assert result["factors"]["challenge_level"] > 0
        assert history["activities"][0]["metadata"] == {
            "game_type": "echo-echo",
            "streak_days": 3,
            "difficulty": "medium",
        }

    @pytest.mark.asyncio
    async def test_recalculate_unknown_metadata_field(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            result = await strength_recalculate(
                user_id="u1",
                activity={"type": "daily_login", "metadata": {"colour": "blue"}},
            )

        assert result["success"] is False
        assert "Invalid activity" in result["error"]

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        with patch("memstrength.__main__.strength_store", None):
            for result in (
                await strength_read(user_id="u1"),
                await strength_reconcile(),
                await strength_sync_status(),
                await activity_history(user_id="u1"),
            ):
                assert result["success"] is False
                assert "not initialized" in result["error"]

    @pytest.mark.asyncio
    async def test_read_after_recalculate(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            await strength_recalculate(
                user_id="u1",
                activity={"type": "memory_added", "timestamp": hours_ago(1), "value": 10},
            )
            result = await strength_read(user_id="u1")

        assert result == {"success": True, "strength": 2}

    @pytest.mark.asyncio
    async def test_sync_status_and_reconcile_offline(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            await strength_recalculate(
                user_id="u1",
                activity={"type": "daily_login", "timestamp": hours_ago(1)},
            )
            status = await strength_sync_status()
            reconcile = await strength_reconcile()

        assert status["remote_configured"] is False
        assert status["pending_changes"] == 1
        assert status["last_sync_time"] is None
        assert reconcile["success"] is False
        assert reconcile["pending"] == ["u1"]

    @pytest.mark.asyncio
    async def test_activity_history(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", ephemeral_store):
            for hours in (50, 1):
                await strength_recalculate(
                    user_id="u1",
                    activity={"type": "memory_reviewed", "timestamp": hours_ago(hours)},
                )
            everything = await activity_history(user_id="u1")
            today = await activity_history(user_id="u1", days=1)

        assert everything["count"] == 2
        assert everything["activities"][0]["type"] == "memory_reviewed"
        assert today["count"] == 1


class TestDirectCall:
    """Tests for --call direct tool invocation."""

    @pytest.mark.asyncio
    async def test_direct_call(self, ephemeral_store):
        args = json.dumps({"activity_type": "daily_login", "metadata": {"streakDays": 4}})
        with patch("memstrength.__main__.strength_store", None):
            result = await call_tool_directly("activity_points", args, ephemeral_store)

        assert result == {"success": True, "points": 6}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", None):
            result = await call_tool_directly("no_such_tool", "{}", ephemeral_store)

        assert result["success"] is False
        assert "Unknown tool" in result["error"]

    @pytest.mark.asyncio
    async def test_invalid_json(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", None):
            result = await call_tool_directly("strength_read", "{not json", ephemeral_store)

        assert result["success"] is False
        assert "Invalid JSON" in result["error"]

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, ephemeral_store):
        with patch("memstrength.__main__.strength_store", None):
            result = await call_tool_directly(
                "strength_read", json.dumps({"user": "u1"}), ephemeral_store
            )

        assert result["success"] is False
        assert "Invalid arguments" in result["error"]
