"""Tracked-entry tools: list the record map and read one record."""

import logging
import os

import mcp.types as types

from ...sync.engine import SyncEngine
from ...sync.models import SyncStatus
from .errors import build_error_response, format_record_line, format_timestamp
from .registry import ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 200
MAX_LIMIT = 5000


def _parse_status(raw: str | None) -> SyncStatus | None:
    if raw is None or raw == "":
        return None
    try:
        return SyncStatus(raw.upper())
    except ValueError:
        valid = ", ".join(s.value for s in SyncStatus)
        raise ValueError(
            f"Invalid status '{raw}': must be one of {valid}"
        ) from None


def _parse_limit(raw: object) -> int:
    if raw is None:
        return DEFAULT_LIMIT
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"Invalid limit {raw!r}: must be an integer")
    if not 1 <= raw <= MAX_LIMIT:
        raise ValueError(f"Invalid limit {raw}: must be between 1 and {MAX_LIMIT}")
    return raw


def _resolve_path(engine: SyncEngine, raw: str) -> str:
    """Absolute paths are used as-is, relative ones resolve under watch_dir."""
    if os.path.isabs(raw):
        return os.path.normpath(raw)
    return os.path.normpath(os.path.join(engine.watch_dir, raw))


async def _handle_list_files(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    status = _parse_status(args.get("status"))
    limit = _parse_limit(args.get("limit"))

    records = engine.snapshot()
    if status is not None:
        records = [r for r in records if r.status is status]
    total = len(records)
    shown = records[:limit]

    if not shown:
        suffix = f" with status {status.value}" if status else ""
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text", text=f"No tracked entries{suffix}."
                )
            ],
            structuredContent={"files": [], "total": 0},
        )

    lines = [format_record_line(r) for r in shown]
    if total > len(shown):
        lines.append(f"... {total - len(shown)} more (raise limit to see them)")

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={
            # children are reported by sync_get_file only
            "files": [
                r.model_copy(update={"children": {}}).to_wire() for r in shown
            ],
            "total": total,
        },
    )


async def _handle_get_file(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    raw_path = args.get("path")
    if not raw_path or not isinstance(raw_path, str):
        raise ValueError("path is required")

    path = _resolve_path(engine, raw_path)
    record = engine.get(path)
    if record is None:
        return build_error_response(
            "not_found",
            f"{path} is not tracked",
            "Use sync_list_files to see tracked paths.",
        )

    lines = [
        f"Path: {record.path}",
        f"Status: {record.status.value}",
        f"Type: {'directory' if record.is_directory else 'file'}",
        f"Size: {record.size}",
        f"Last modified: {format_timestamp(record.last_modified)}",
        f"Last synced: {format_timestamp(record.last_synced)}",
    ]
    if record.checksum:
        lines.append(f"Checksum: {record.checksum}")
    if record.children:
        lines.append(f"Children: {len(record.children)}")
        lines.extend(f"  {name}" for name in sorted(record.children))

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=record.to_wire(),
    )


FILE_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_list_files",
            description="List tracked entries sorted by path, optionally filtered by sync status. Returns the wire shape of each record without nested children.",
            inputSchema={
                "type": "object",
                "properties": {
                    "status": {
                        "type": "string",
                        "enum": [s.value for s in SyncStatus],
                        "description": "Only list entries with this status",
                    },
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "maximum": MAX_LIMIT,
                        "default": DEFAULT_LIMIT,
                        "description": "Maximum number of entries to return",
                    },
                },
                "required": [],
            },
        ),
        handler=_handle_list_files,
    ),
    ToolSpec(
        tool=types.Tool(
            name="sync_get_file",
            description="Get the full record of one tracked entry, including the current records of a directory's direct children (tree nesting). Relative paths resolve under the watch directory.",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Absolute path, or path relative to the watch directory",
                    },
                },
                "required": ["path"],
            },
        ),
        handler=_handle_get_file,
    ),
]
