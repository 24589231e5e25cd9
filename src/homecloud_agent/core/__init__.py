"""Core helpers shared between the sync engine and the MCP server."""

from .async_utils import await_unless_set, run_sync

__all__ = ["await_unless_set", "run_sync"]
