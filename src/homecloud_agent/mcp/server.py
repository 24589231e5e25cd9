"""MCP server for the homecloud sync agent using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents inspect the agent's tracked entries and their sync status.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP

``--headless`` runs the engine without MCP and logs every status update
until interrupted.
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
import yaml
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config, load_hierarchical_config
from ..config_schema import LoggingConfig, build_config
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..sync.engine import SyncEngine
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

server = Server("homecloud-agent")

# Initialized in main()
_engine: SyncEngine | None = None
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If the engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


def load_logging_config() -> LoggingConfig:
    """Return the YAML ``logging`` section, or defaults if unreadable.

    Runs before logging is configured, so problems go to stderr; the
    lifespan reports the same error again and fails.
    """
    try:
        return build_config(load_hierarchical_config()).logging
    except (ValueError, OSError, yaml.YAMLError) as e:
        print(f"Warning: ignoring logging config: {e}", file=sys.stderr)
        return LoggingConfig()


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), starts the sync
    engine via the lifespan manager and serves tools over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (watch_dir, log_file, debug)
    """
    overrides = config_overrides or {}
    logging_config = load_logging_config()

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file") or logging_config.file,
        level=logging_config.level,
    )

    registry = ToolRegistry(ALL_SPECS)
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    # set_engine() is called here rather than inside the lifespan so that
    # `python -m homecloud_agent.mcp.server` updates this module's global
    # and not a second imported copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="homecloud-agent",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_engine(None)
            set_registry(None)


async def run_headless(config_overrides: dict | None = None) -> int:
    """Run the engine without MCP, logging each status update.

    Returns the number of status updates observed.
    """
    overrides = config_overrides or {}
    logging_config = load_logging_config()
    setup_logging(
        mode="cli",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file") or logging_config.file,
        level=logging_config.level,
    )

    updates = 0
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        engine: SyncEngine = ctx["engine"]
        async for record in engine.status_bus:
            updates += 1
            if record.is_removal:
                logger.info("%s: no longer tracked", record.path)
            else:
                logger.info("%s: %s", record.path, record.status.value)
    return updates


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="homecloud-agent - local sync agent with an MCP status server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch ~/homecloud (or HOMECLOUD_WATCH_DIR / .homecloud/config.yml)
  homecloud-agent

  # Watch another directory
  homecloud-agent --watch-dir /srv/share

  # Run without MCP, logging status updates to stderr
  homecloud-agent --headless

  # Custom log file location
  homecloud-agent --log-file /var/log/homecloud-agent.log

  # Write a commented starter config to .homecloud/config.yml
  homecloud-agent --init-config

Note: Without --headless this server uses stdio transport for JSON-RPC
communication with MCP clients. All user-facing messages go to stderr.
        """,
    )

    parser.add_argument(
        "--watch-dir",
        help="Directory to watch (takes precedence over HOMECLOUD_WATCH_DIR and config files)",
    )
    parser.add_argument(
        "--log-file",
        help=f"Log file path (MCP mode default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without the MCP server and log status updates to stderr",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Create a starter config file if none exists, print its path and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"homecloud-agent version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        print(f"Config file: {ensure_config()}", file=sys.stderr)
        return

    config_overrides = {}
    if args.watch_dir:
        config_overrides["watch_dir"] = args.watch_dir
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.debug:
        config_overrides["debug"] = True

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    entry = run_headless if args.headless else main
    try:
        asyncio.run(entry(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
