"""Tests for homecloud_agent.sync.scanner: initial scan and nesting policies."""

import hashlib
import os
from unittest.mock import patch

from homecloud_agent.sync.models import ScanNesting, SyncStatus
from homecloud_agent.sync.scanner import (
    DirectoryScanner,
    file_checksum,
    is_ignored,
)


def _p(root, *parts):
    return os.path.join(str(root), *parts)


class TestTreeNesting:
    def test_every_entry_is_tracked(self, sample_tree):
        records = DirectoryScanner(nesting=ScanNesting.TREE).scan(sample_tree)

        assert set(records) == {
            _p(sample_tree, "a.txt"),
            _p(sample_tree, "docs"),
            _p(sample_tree, "docs", "b.txt"),
        }

    def test_records_carry_no_children(self, sample_tree):
        records = DirectoryScanner().scan(sample_tree)

        docs = records[_p(sample_tree, "docs")]
        assert docs.is_directory
        assert docs.children == {}
        assert all(record.children == {} for record in records.values())

    def test_deep_entries_are_tracked(self, tmp_path):
        (tmp_path / "x" / "y").mkdir(parents=True)
        (tmp_path / "x" / "y" / "z.txt").write_text("z")

        records = DirectoryScanner().scan(tmp_path)

        assert records[_p(tmp_path, "x", "y")].is_directory
        assert records[_p(tmp_path, "x", "y", "z.txt")].size == 1

    def test_record_fields(self, sample_tree):
        records = DirectoryScanner().scan(sample_tree)

        a = records[_p(sample_tree, "a.txt")]
        assert a.status is SyncStatus.SYNCED
        assert a.size == 10
        assert a.version == 1
        assert a.is_downloaded is True
        assert a.is_directory is False
        assert a.last_modified is not None
        assert a.last_synced is not None
        assert a.checksum is None

    def test_root_is_not_a_record(self, sample_tree):
        records = DirectoryScanner().scan(sample_tree)
        assert str(sample_tree) not in records


class TestLegacyNesting:
    def test_nested_file_is_not_tracked(self, sample_tree):
        records = DirectoryScanner(nesting=ScanNesting.LEGACY).scan(
            sample_tree
        )

        assert set(records) == {
            _p(sample_tree, "a.txt"),
            _p(sample_tree, "docs"),
        }
        assert set(records[_p(sample_tree, "docs")].children) == {"b.txt"}

    def test_subdirectories_stay_top_level(self, tmp_path):
        (tmp_path / "x" / "y").mkdir(parents=True)

        records = DirectoryScanner(nesting=ScanNesting.LEGACY).scan(tmp_path)

        assert _p(tmp_path, "x", "y") in records
        assert records[_p(tmp_path, "x")].children == {}


class TestScanOptions:
    def test_ignore_patterns_skip_entries(self, sample_tree):
        (sample_tree / ".DS_Store").write_text("junk")
        (sample_tree / "partial.tmp").write_text("junk")

        records = DirectoryScanner().scan(sample_tree)

        assert _p(sample_tree, ".DS_Store") not in records
        assert _p(sample_tree, "partial.tmp") not in records

    def test_ignored_directory_is_not_descended(self, sample_tree):
        (sample_tree / "cache").mkdir()
        (sample_tree / "cache" / "blob.bin").write_text("x")

        records = DirectoryScanner(ignore_patterns=["cache"]).scan(sample_tree)

        assert not any("cache" in path for path in records)

    def test_checksums_computed_when_enabled(self, sample_tree):
        records = DirectoryScanner(compute_checksums=True).scan(sample_tree)

        a = records[_p(sample_tree, "a.txt")]
        assert a.checksum == hashlib.md5(b"0123456789").hexdigest()
        assert records[_p(sample_tree, "docs")].checksum is None

    def test_unreadable_directory_is_skipped(self, sample_tree):
        scanner = DirectoryScanner()
        real_scandir = os.scandir

        def _scandir(path):
            if os.fspath(path).endswith("docs"):
                raise PermissionError(13, "Permission denied", path)
            return real_scandir(path)

        with patch(
            "homecloud_agent.sync.scanner.os.scandir", side_effect=_scandir
        ):
            records = scanner.scan(sample_tree)

        assert _p(sample_tree, "a.txt") in records
        assert _p(sample_tree, "docs") in records
        assert scanner.error_count == 1

    def test_missing_root_yields_empty_map(self, tmp_path):
        scanner = DirectoryScanner()
        assert scanner.scan(tmp_path / "missing") == {}
        assert scanner.error_count == 1


class TestHelpers:
    def test_is_ignored_matches_basename(self):
        assert is_ignored("/w/sub/Thumbs.db", ["Thumbs.db"])
        assert is_ignored("/w/file.tmp", ["*.tmp"])
        assert not is_ignored("/w/tmp/file.txt", ["*.tmp"])

    def test_file_checksum(self, tmp_path):
        target = tmp_path / "data.bin"
        target.write_bytes(b"payload" * 1000)
        assert file_checksum(target) == hashlib.md5(b"payload" * 1000).hexdigest()
