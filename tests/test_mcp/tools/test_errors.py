"""Tests for the error response builder and shared formatting helpers."""

from datetime import datetime, timezone

from homecloud_agent.mcp.tools.errors import (
    build_error_response,
    format_record_line,
    format_timestamp,
)
from homecloud_agent.sync.models import FileRecord, SyncStatus


def test_build_error_response():
    result = build_error_response(
        "not_found", "/w/a is not tracked", "Use sync_list_files."
    )
    assert result.isError
    assert result.content[0].text == (
        "Error (not_found): /w/a is not tracked\n\nAction: Use sync_list_files."
    )


def test_format_timestamp():
    ts = datetime(2024, 5, 1, 9, 5, tzinfo=timezone.utc)
    assert format_timestamp(ts) == "2024-05-01 09:05"
    assert format_timestamp(None) == "-"


def test_format_record_line():
    record = FileRecord(
        path="/w/docs", status=SyncStatus.SYNCING, is_directory=True
    )
    line = format_record_line(record)
    assert line.startswith("SYNCING")
    assert "dir" in line
    assert line.endswith("/w/docs")
