"""Error response builders and shared formatting for MCP tool handlers.

Error responses carry a corrective action so an agent can recover without
human intervention.
"""

from datetime import datetime

import mcp.types as types

from ...sync.models import FileRecord


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            engine_error, server_error, unknown_tool)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "/x is not tracked", "Use sync_list_files to see tracked paths.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Shared formatting utilities
# ---------------------------------------------------------------------------


def format_timestamp(timestamp: datetime | None) -> str:
    """Format a record timestamp for display (YYYY-MM-DD HH:MM, or "-")."""
    match timestamp:
        case datetime() as dt:
            return dt.strftime("%Y-%m-%d %H:%M")
        case None:
            return "-"
        case _:
            return str(timestamp)


def format_record_line(record: FileRecord) -> str:
    """One-line summary of a record: status, kind, size and path."""
    kind = "dir " if record.is_directory else "file"
    return f"{record.status.value:<10} {kind} {record.size:>10}  {record.path}"
