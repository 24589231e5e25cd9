"""Tests for sync_list_files and sync_get_file."""

import os

from homecloud_agent.mcp.tools import ALL_SPECS, ToolRegistry
from homecloud_agent.sync.models import FileEventType, SyncStatus


def _registry():
    return ToolRegistry(ALL_SPECS)


class TestListFiles:
    async def test_lists_every_tracked_entry(self, make_engine, sample_tree):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool("sync_list_files", {}, engine)

        files = result.structuredContent["files"]
        assert result.structuredContent["total"] == 3
        assert [f["path"] for f in files] == [
            os.path.join(str(sample_tree), "a.txt"),
            os.path.join(str(sample_tree), "docs"),
            os.path.join(str(sample_tree), "docs", "b.txt"),
        ]
        assert all("filesContent" not in f for f in files)
        assert files[0]["size"] == 10
        assert "a.txt" in result.content[0].text

    async def test_status_filter(
        self,
        make_engine,
        sample_tree,
        fake_sources,
        gated_uploader,
        wait_for_status,
    ):
        engine = make_engine(uploader=gated_uploader)
        await engine.start()
        path = os.path.join(str(sample_tree), "pending.txt")
        await fake_sources[0].emit(FileEventType.CREATED, path)
        await wait_for_status(engine, path, SyncStatus.SYNCING)

        result = await _registry().call_tool(
            "sync_list_files", {"status": "syncing"}, engine
        )

        assert [f["path"] for f in result.structuredContent["files"]] == [path]

    async def test_empty_result(self, make_engine):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_list_files", {"status": "ERROR"}, engine
        )

        assert result.structuredContent == {"files": [], "total": 0}
        assert "No tracked entries with status ERROR" in result.content[0].text

    async def test_limit_truncates(self, make_engine):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_list_files", {"limit": 1}, engine
        )

        assert len(result.structuredContent["files"]) == 1
        assert result.structuredContent["total"] == 3
        assert "2 more" in result.content[0].text

    async def test_invalid_status_is_validation_error(self, make_engine):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_list_files", {"status": "DONE"}, engine
        )

        assert result.isError
        assert "validation_error" in result.content[0].text

    async def test_invalid_limit_is_validation_error(self, make_engine):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_list_files", {"limit": 0}, engine
        )

        assert result.isError


class TestGetFile:
    async def test_absolute_path(self, make_engine, sample_tree):
        engine = make_engine()
        await engine.start()
        docs = os.path.join(str(sample_tree), "docs")

        result = await _registry().call_tool(
            "sync_get_file", {"path": docs}, engine
        )

        wire = result.structuredContent
        assert wire["path"] == docs
        assert wire["isDirectory"] is True
        assert set(wire["filesContent"]) == {"b.txt"}
        assert "Children: 1" in result.content[0].text

    async def test_relative_path_resolves_under_watch_dir(
        self, make_engine, sample_tree
    ):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_get_file", {"path": "docs/b.txt"}, engine
        )

        assert result.structuredContent["path"] == os.path.join(
            str(sample_tree), "docs", "b.txt"
        )
        assert result.structuredContent["status"] == "SYNCED"

    async def test_untracked_path_is_not_found(self, make_engine):
        engine = make_engine()
        await engine.start()

        result = await _registry().call_tool(
            "sync_get_file", {"path": "missing.txt"}, engine
        )

        assert result.isError
        assert "not_found" in result.content[0].text

    async def test_path_required(self, make_engine):
        engine = make_engine()

        result = await _registry().call_tool("sync_get_file", {}, engine)

        assert result.isError
        assert "path is required" in result.content[0].text
