"""Engine status tool: lifecycle state, record counts and watch health."""

import logging

import mcp.types as types

from ...sync.engine import SyncEngine
from .registry import ToolSpec

logger = logging.getLogger(__name__)


async def _handle_sync_status(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    counts = engine.status_counts()
    source = engine.event_source
    bus = engine.status_bus

    watcher = {
        "running": bool(getattr(source, "running", source is not None)),
        "degraded": bool(getattr(source, "degraded", False)),
        "errorCount": int(getattr(source, "error_count", 0)),
    }
    structured = {
        "state": engine.state.value,
        "watchDir": engine.watch_dir,
        "tracked": sum(counts.values()),
        "counts": {status.value: n for status, n in counts.items()},
        "inFlight": len(engine.in_flight),
        "watcher": watcher,
        "bus": {
            "capacity": bus.capacity,
            "policy": bus.policy.value,
            "queued": bus.qsize(),
            "published": bus.published,
            "dropped": bus.dropped,
            "closed": bus.closed,
        },
    }

    lines = [
        f"Engine: {structured['state']} ({engine.watch_dir})",
        f"Tracked: {structured['tracked']}  In flight: {structured['inFlight']}",
        "  "
        + ", ".join(f"{name}={n}" for name, n in structured["counts"].items()),
    ]
    if watcher["degraded"]:
        lines.append(
            "Watcher: DEGRADED (the watch directory may have been removed)"
        )
    if bus.dropped:
        lines.append(f"Status bus dropped {bus.dropped} snapshots")

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


STATUS_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="sync_status",
            description="Report the sync engine's lifecycle state, the number of tracked entries per sync status, in-flight transfers, watcher health and status bus counters.",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        ),
        handler=_handle_sync_status,
    ),
]
