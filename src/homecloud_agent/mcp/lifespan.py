"""Lifespan management for agent startup and shutdown."""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import yaml
from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config
from ..core.async_utils import run_sync
from ..sync.engine import SyncEngine
from ..sync.errors import SyncAgentError

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage agent startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create the watch directory if it does not exist
    - Build the SyncEngine, scan the directory and start watching it

    On shutdown:
    - Stop the engine (cancelling in-flight transfers) and close its status bus

    Args:
        config_overrides: Optional dict with config values from CLI (watch_dir, debug)

    Yields:
        Dict with 'engine' (running SyncEngine) and 'config' (validated Config)

    Raises:
        RuntimeError: If configuration is invalid or the engine cannot start.
    """
    logger.info("homecloud-agent starting...")
    _stderr_print("homecloud-agent starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            yaml_fallbacks = build_config(raw).fallbacks()
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            watch_dir=overrides.get("watch_dir"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        if config.debug:
            logging.getLogger("homecloud_agent").setLevel(logging.DEBUG)
    except (ValueError, OSError, yaml.YAMLError) as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Check HOMECLOUD_WATCH_DIR and the .homecloud/config.yml file."
        )
        raise RuntimeError(f"Configuration error: {e}") from e

    logger.info("Watch directory: %s", config.watch_dir)
    _stderr_print(f"  Watch directory: {config.watch_dir}")

    try:
        await run_sync(os.makedirs, config.watch_dir, exist_ok=True)
        engine = SyncEngine.from_config(config)
        await engine.start()
    except (SyncAgentError, OSError) as e:
        logger.error("Failed to start sync engine: %s", e)
        _stderr_print("ERROR: Sync engine failed to start.")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Sync engine failed to start: {e}") from e

    tracked = len(engine.snapshot())
    _stderr_print(f"  Tracking {tracked} entries")
    _stderr_print("Agent ready.")

    try:
        yield {"engine": engine, "config": config}
    finally:
        logger.info("homecloud-agent shutting down")
        await engine.close()
        _stderr_print("homecloud-agent shutting down.")
