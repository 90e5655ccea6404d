"""MCP server entry point for the memory strength engine.

This module provides the main entry point for the MCP server with:
- CLI argument parsing for flexible configuration
- Pydantic Settings for environment variable support
- Tool registration for the strength operations
- Signal handling for graceful shutdown
- Logging to stderr (stdout carries the MCP stdio transport)

Usage:
    python -m memstrength [options]

    Options:
        --sqlite-path PATH          Local cache database path
        --remote-url URL            Remote store URL (omit to run offline)
        --remote-table NAME         Remote table name (default: profiles)
        --remote-timeout SECONDS    Remote request timeout (default: 10)
        --window-days DAYS          Activity window per recalculation (default: 30)
        --log-level LEVEL           Logging level (default: INFO)
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from memstrength.config import StrengthSettings
from memstrength.storage.bridge import StrengthStore
from memstrength.strength.operations import read_strength, recalculate_after_activity
from memstrength.strength.points import points_for
from memstrength.strength.types import Activity, ActivityMetadata

# Initialize FastMCP server
mcp = FastMCP("memstrength")

# Global components (initialized in main)
strength_store: Optional[StrengthStore] = None
window_days: int = 30
conflict_retries: int = 3

logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """Configure logging to stderr (never stdout for MCP servers).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    logger.info(f"Logging initialized at {log_level.upper()} level")


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments with configuration defaults.

    Configuration precedence:
        1. CLI arguments (highest priority)
        2. Environment variables (MEMSTRENGTH_ prefix)
        3. Defaults (lowest priority)
    """
    settings = StrengthSettings()

    parser = argparse.ArgumentParser(
        description="Memory strength MCP server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Direct tool invocation mode
    parser.add_argument(
        "--call",
        type=str,
        metavar="TOOL_NAME",
        help="Directly invoke a tool by name (activity_points, strength_recalculate, "
        "strength_read, strength_reconcile, strength_sync_status, activity_history)",
    )
    parser.add_argument(
        "--args",
        type=str,
        default="{}",
        help="JSON arguments for the tool (used with --call)",
    )

    # Local cache
    parser.add_argument(
        "--sqlite-path",
        type=str,
        default=str(settings.sqlite_path) if settings.sqlite_path else None,
        help="SQLite database path (default: ~/.memstrength/strength.db)",
    )

    # Remote store
    parser.add_argument(
        "--remote-url",
        type=str,
        default=settings.remote_url,
        help="Remote store URL (omit to run offline only)",
    )
    parser.add_argument(
        "--remote-table",
        type=str,
        default=settings.remote_table,
        help="Remote table holding strength records",
    )
    parser.add_argument(
        "--remote-timeout",
        type=float,
        default=settings.remote_timeout,
        help="Remote request timeout in seconds",
    )

    # Scoring
    parser.add_argument(
        "--window-days",
        type=int,
        default=settings.activity_window_days,
        help="Days of activity log scored per recalculation",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    args = parser.parse_args(argv)
    # Secrets and retry policy come from the environment only
    args.remote_api_key = settings.remote_api_key
    args.remote_max_retries = settings.remote_max_retries
    args.conflict_retries = settings.conflict_retries
    return args


async def initialize_components(args: argparse.Namespace) -> StrengthStore:
    """Initialize the StrengthStore from parsed arguments.

    Raises:
        StrengthStoreError: If the local cache cannot be opened
    """
    global window_days, conflict_retries

    logger.info("Initializing components...")

    sqlite_path = Path(args.sqlite_path) if args.sqlite_path else None

    logger.info(
        f"Configuration: "
        f"sqlite_path={sqlite_path}, "
        f"remote_url={args.remote_url}, "
        f"remote_table={args.remote_table}, "
        f"window_days={args.window_days}"
    )

    store = await StrengthStore.create(
        sqlite_path=sqlite_path,
        remote_url=args.remote_url,
        remote_api_key=args.remote_api_key,
        remote_table=args.remote_table,
        remote_timeout=args.remote_timeout,
        remote_max_retries=args.remote_max_retries,
    )

    window_days = args.window_days
    conflict_retries = args.conflict_retries

    if not store.remote_configured:
        logger.warning("No remote store configured; strength values stay local and pending")

    logger.info("StrengthStore initialized successfully")
    return store


# =============================================================================
# MCP Tool Handlers
# =============================================================================


@mcp.tool()
async def activity_points(
    activity_type: str,
    metadata: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Get how many points an activity is worth before recording it.

    Args:
        activity_type: Activity type (memory_added, memory_imported, game_completed,
            memory_reviewed, daily_login, game_perfect_score, memory_shared,
            streak_maintained). Unknown types are worth the default 5 points.
        metadata: Optional dict with difficulty (easy/medium/hard) and streak_days

    Returns:
        Result dictionary with success and points
    """
    try:
        return {
            "success": True,
            "points": points_for(activity_type, ActivityMetadata.from_dict(metadata)),
        }
    except (TypeError, ValueError) as e:
        return {"success": False, "error": f"Invalid metadata: {e}"}


@mcp.tool()
async def strength_recalculate(
    user_id: str,
    activity: dict[str, Any],
    recent_window: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """Record an activity and recalculate the user's memory strength.

    Args:
        user_id: The user's ID
        activity: Activity dict with type, timestamp (ISO-8601, default now),
            value and optional metadata
        recent_window: Optional list of activity dicts to score instead of
            the stored activity log

    Returns:
        Result dictionary with:
        - success: Boolean indicating operation success
        - strength: New strength (0-100)
        - previous_strength: Strength before the recalculation
        - base_increase / decay: Ingredients of the change
        - factors: The eight factor values
        - synced: Whether the value reached the remote store
        - error: Error message (if failed)
    """
    if strength_store is None:
        return {"success": False, "error": "Server not initialized"}

    try:
        new_activity = Activity.from_dict(activity)
        window = (
            [Activity.from_dict(item) for item in recent_window]
            if recent_window is not None
            else None
        )
    except (KeyError, TypeError, ValueError) as e:
        return {"success": False, "error": f"Invalid activity: {e}"}

    try:
        result = await recalculate_after_activity(
            store=strength_store,
            user_id=user_id,
            activity=new_activity,
            recent_window=window,
            window_days=window_days,
            conflict_retries=conflict_retries,
        )

        return {
            "success": True,
            "strength": result.strength,
            "previous_strength": result.previous_strength,
            "base_increase": result.base_increase,
            "decay": result.decay,
            "factors": result.factors.as_dict(),
            "synced": result.synced,
        }

    except Exception as e:
        logger.error(f"strength_recalculate failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


@mcp.tool()
async def strength_read(user_id: str) -> dict[str, Any]:
    """Read a user's memory strength (remote first, offline cache fallback).

    Args:
        user_id: The user's ID

    Returns:
        Result dictionary with success and strength (0-100)
    """
    if strength_store is None:
        return {"success": False, "error": "Server not initialized"}

    try:
        return {"success": True, "strength": await read_strength(strength_store, user_id)}
    except Exception as e:
        logger.error(f"strength_read failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


@mcp.tool()
async def strength_reconcile(limit: int = 100) -> dict[str, Any]:
    """Push strength values written while offline to the remote store.

    Args:
        limit: Maximum number of pending values to process (default: 100)

    Returns:
        Result dictionary with pushed, adopted and pending user IDs and errors
    """
    if strength_store is None:
        return {"success": False, "error": "Server not initialized"}

    try:
        result = await strength_store.reconcile(limit=limit)
        return {
            "success": result.success,
            "pushed": result.pushed,
            "adopted": result.adopted,
            "pending": result.pending,
            "errors": result.errors,
        }
    except Exception as e:
        logger.error(f"strength_reconcile failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}


@mcp.tool()
async def strength_sync_status() -> dict[str, Any]:
    """Report pending offline changes and the last successful sync.

    Returns:
        Result dictionary with remote_configured, remote_available,
        pending_changes and last_sync_time (epoch seconds or None)
    """
    if strength_store is None:
        return {"success": False, "error": "Server not initialized"}

    status = strength_store.sync_status()
    return {
        "success": True,
        "remote_configured": status.remote_configured,
        "remote_available": status.remote_available,
        "pending_changes": status.pending_changes,
        "last_sync_time": status.last_sync_time,
    }


@mcp.tool()
async def activity_history(
    user_id: str,
    days: Optional[int] = None,
    limit: int = 100,
) -> dict[str, Any]:
    """List a user's logged activities, oldest first.

    Args:
        user_id: The user's ID
        days: Only activities from the last N days (optional)
        limit: Maximum number of most recent activities (default: 100)

    Returns:
        Result dictionary with success, count and activities
    """
    if strength_store is None:
        return {"success": False, "error": "Server not initialized"}

    since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
    activities = strength_store.get_activities(user_id, since=since, limit=limit)
    return {
        "success": True,
        "count": len(activities),
        "activities": [a.to_dict() for a in activities],
    }


# =============================================================================
# Direct Tool Invocation
# =============================================================================


async def call_tool_directly(
    tool_name: str,
    args_json: str,
    store: StrengthStore,
) -> dict[str, Any]:
    """Directly invoke a tool without MCP protocol overhead.

    Args:
        tool_name: Name of the tool to call
        args_json: JSON string of arguments for the tool
        store: Initialized StrengthStore

    Returns:
        Tool result as dictionary
    """
    global strength_store
    strength_store = store

    try:
        tool_args = json.loads(args_json)
    except json.JSONDecodeError as e:
        return {"success": False, "error": f"Invalid JSON arguments: {e}"}

    tool_handlers = {
        "activity_points": activity_points,
        "strength_recalculate": strength_recalculate,
        "strength_read": strength_read,
        "strength_reconcile": strength_reconcile,
        "strength_sync_status": strength_sync_status,
        "activity_history": activity_history,
    }

    handler = tool_handlers.get(tool_name)
    if not handler:
        return {
            "success": False,
            "error": f"Unknown tool: {tool_name}. Available: {list(tool_handlers.keys())}",
        }

    try:
        return await handler(**tool_args)
    except TypeError as e:
        return {"success": False, "error": f"Invalid arguments for {tool_name}: {e}"}
    except Exception as e:
        return {"success": False, "error": f"Tool execution failed: {e}"}


def run_direct_call(args: argparse.Namespace) -> None:
    """Run a direct tool call and print result to stdout."""
    setup_logging("WARNING")

    async def _run():
        store = await initialize_components(args)
        try:
            result = await call_tool_directly(args.call, args.args, store)
            print(json.dumps(result))
        finally:
            await store.close()

    asyncio.run(_run())


# =============================================================================
# Signal Handling
# =============================================================================


def handle_shutdown(signum: int, frame: Any) -> None:
    """Handle SIGINT/SIGTERM for graceful shutdown."""
    logger.info(f"Received signal {signum}, shutting down gracefully...")
    sys.exit(0)


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for MCP server.

    Workflow:
    1. Parse CLI arguments
    2. If --call provided, run direct tool invocation and exit
    3. Setup logging
    4. Initialize components
    5. Register signal handlers
    6. Run MCP server with stdio transport
    """
    global strength_store

    args = parse_arguments()

    if args.call:
        run_direct_call(args)
        return

    setup_logging(args.log_level)

    logger.info("Starting memstrength MCP server...")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        strength_store = loop.run_until_complete(initialize_components(args))

        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

        logger.info("MCP server ready, starting stdio transport...")

        # mcp.run() is synchronous and manages its own event loop
        mcp.run(transport="stdio")

    except Exception as e:
        logger.error(f"Server failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if strength_store is not None:
            try:
                loop.run_until_complete(strength_store.close())
            except Exception as e:
                logger.warning(f"Cleanup failed: {e}")


if __name__ == "__main__":
    main()
