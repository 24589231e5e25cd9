"""Watch directory tool: point the engine at another directory."""

import logging
import os

import mcp.types as types

from ...sync.engine import SyncEngine
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


async def _handle_set_watch_dir(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    raw_path = args.get("path")
    if not raw_path or not isinstance(raw_path, str):
        raise ValueError("path is required")

    path = os.path.expanduser(raw_path)
    if not os.path.isabs(path):
        raise ValueError(f"path must be absolute, got '{raw_path}'")

    previous = engine.watch_dir
    try:
        await engine.set_watch_dir(path)
    except OSError as e:
        logger.error("Cannot switch watch directory to %s: %s", path, e)
        return build_error_response(
            "engine_error",
            f"Cannot use {path} as watch directory: {e}",
            "Choose a directory the agent can create and read, then call "
            "sync_set_watch_dir again.",
        )

    tracked = len(engine.snapshot())
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text=f"Watching {engine.watch_dir} (was {previous}); "
                f"tracking {tracked} entries.",
            )
        ],
        structuredContent={
            "watchDir": engine.watch_dir,
            "previousWatchDir": previous,
            "state": engine.state.value,
            "tracked": tracked,
        },
    )


WATCH_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_set_watch_dir",
            description="Switch the engine to another watch directory. Stops the engine, creates the directory if missing and restarts with a fresh scan; records of the old directory are dropped.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Absolute path of the new watch directory (~ is expanded)",
                    },
                },
                "required": ["path"],
            },
        ),
        handler=_handle_set_watch_dir,
    ),
]
