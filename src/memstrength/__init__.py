"""Memory strength - engagement scoring for memory-keeping apps.

This package derives a bounded 0-100 "memory strength" for a user from a
stream of activity events and keeps it in sync between a remote store and an
offline cache.

Main components:
- strength.operations: recalculate_after_activity, read_strength
- strength.points: points_for
- storage.bridge: Remote-first StrengthStore with SQLite cache fallback
- config: Pydantic Settings for configuration management

Usage:
    # Run as MCP server
    python -m memstrength

    # Or use the CLI
    memstrength --help
"""

__all__ = ["main"]
__version__ = "0.1.0"


def main() -> None:
    """Main entry point for the memstrength MCP server."""
    from memstrength.__main__ import main as _main
    _main()
