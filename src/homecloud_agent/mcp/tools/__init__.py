"""MCP tool handlers exposing the sync engine's record map and watch directory.

Handlers share the signature (engine, args) -> CallToolResult and return
the camelCase wire shape of records as structured content.
"""

from .errors import build_error_response
from .files import FILE_SPECS
from .registry import ToolRegistry, ToolSpec
from .status import STATUS_SPECS
from .watch import WATCH_SPECS

ALL_SPECS: list[ToolSpec] = STATUS_SPECS + FILE_SPECS + WATCH_SPECS

__all__ = [
    "build_error_response",
    "ToolSpec",
    "ToolRegistry",
    "ALL_SPECS",
    "FILE_SPECS",
    "STATUS_SPECS",
    "WATCH_SPECS",
]
