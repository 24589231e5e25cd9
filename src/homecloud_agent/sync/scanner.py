"""Initial directory scan.

Walks the watch directory in lexical depth-first order (the root itself is
excluded) and builds one ``SYNCED`` record per entry.  Enumeration is best
effort: unreadable directories and entries are logged and skipped, so a
partially enumerated tree is returned rather than nothing.

Two nesting policies are supported (see ``ScanNesting``):

``legacy``
    Single pass.  A file is nested into its parent directory's ``children``
    only if that parent was already visited when the file is reached;
    otherwise the file becomes a top-level record.  Directories are always
    top-level.  Nested files are *not* keys of the result, so they are not
    tracked by the engine.

``tree``
    Every entry is a key of the result and no record carries children.
    The engine derives a directory's direct children from its live map
    whenever the directory is read, so they never go stale.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .models import FileRecord, ScanNesting, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = (".DS_Store", "Thumbs.db", "*.tmp")

_CHUNK_SIZE = 1024 * 1024


def is_ignored(path: str | Path, patterns: Iterable[str]) -> bool:
    """Return ``True`` if the entry name of *path* matches any glob pattern."""
    name = os.path.basename(os.fspath(path))
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def file_checksum(path: str | Path) -> str:
    """Compute the MD5 hex digest of a file's content.

    Raises:
        OSError: If the file cannot be read.
    """
    digest = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass
class _Entry:
    """Mutable scan result, frozen into a ``FileRecord`` at the end."""

    path: str
    name: str
    is_dir: bool
    size: int
    mtime: float
    checksum: str | None = None
    children: dict[str, _Entry] = field(default_factory=dict)


class DirectoryScanner:
    """Build the initial record map for a watch directory.

    Args:
        ignore_patterns: Glob patterns matched against entry names.  Matching
            directories are not descended into.
        nesting: Nesting policy, ``tree`` or ``legacy``.
        compute_checksums: Compute an MD5 checksum for every file.

    Example::

        scanner = DirectoryScanner(nesting=ScanNesting.TREE)
        records = scanner.scan(Path("/home/me/homecloud"))
    """

    def __init__(
        self,
        ignore_patterns: Iterable[str] = DEFAULT_IGNORE_PATTERNS,
        nesting: ScanNesting = ScanNesting.TREE,
        compute_checksums: bool = False,
    ) -> None:
        self.ignore_patterns = tuple(ignore_patterns)
        self.nesting = ScanNesting(nesting)
        self.compute_checksums = compute_checksums
        self.error_count = 0

    def scan(self, root: str | Path) -> dict[str, FileRecord]:
        """Scan *root* and return ``{absolute path: FileRecord}``."""
        root = os.path.abspath(os.fspath(root))
        self.error_count = 0
        scanned_at = datetime.now(timezone.utc)

        entries = list(self._walk(root))
        if self.nesting is ScanNesting.LEGACY:
            top_level = self._nest_legacy(entries)
        else:
            top_level = entries

        records = {
            entry.path: _to_record(entry, scanned_at) for entry in top_level
        }
        logger.info(
            "Initial scan of %s: %d entries, %d tracked (%s nesting, %d errors)",
            root,
            len(entries),
            len(records),
            self.nesting.value,
            self.error_count,
        )
        return records

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def _walk(self, directory: str) -> Iterator[_Entry]:
        """Yield entries below *directory* in lexical pre-order."""
        try:
            with os.scandir(directory) as it:
                dir_entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self._record_error("Cannot read directory %s: %s", directory, e)
            return

        for dir_entry in dir_entries:
            if is_ignored(dir_entry.name, self.ignore_patterns):
                logger.debug("Ignoring %s", dir_entry.path)
                continue
            try:
                is_dir = dir_entry.is_dir(follow_symlinks=False)
                st = dir_entry.stat(follow_symlinks=False)
            except OSError as e:
                self._record_error("Cannot stat %s: %s", dir_entry.path, e)
                continue

            entry = _Entry(
                path=dir_entry.path,
                name=dir_entry.name,
                is_dir=is_dir,
                size=st.st_size,
                mtime=st.st_mtime,
            )
            if self.compute_checksums and not is_dir:
                try:
                    entry.checksum = file_checksum(dir_entry.path)
                except OSError as e:
                    self._record_error(
                        "Cannot checksum %s: %s", dir_entry.path, e
                    )

            yield entry
            if is_dir:
                yield from self._walk(dir_entry.path)

    def _record_error(self, msg: str, *args: object) -> None:
        self.error_count += 1
        logger.warning(msg, *args)

    # ------------------------------------------------------------------
    # Nesting policies
    # ------------------------------------------------------------------

    @staticmethod
    def _nest_legacy(entries: list[_Entry]) -> list[_Entry]:
        visited: dict[str, _Entry] = {}
        top_level: list[_Entry] = []
        for entry in entries:
            if not entry.is_dir:
                parent = visited.get(os.path.dirname(entry.path))
                if parent is not None:
                    parent.children[entry.name] = entry
                    continue
            visited[entry.path] = entry
            top_level.append(entry)
        return top_level


def _to_record(entry: _Entry, scanned_at: datetime) -> FileRecord:
    return FileRecord(
        path=entry.path,
        status=SyncStatus.SYNCED,
        last_modified=datetime.fromtimestamp(entry.mtime, tz=timezone.utc),
        size=entry.size,
        is_downloaded=True,
        is_directory=entry.is_dir,
        version=1,
        checksum=entry.checksum,
        last_synced=scanned_at,
        children={
            name: _to_record(child, scanned_at)
            for name, child in entry.children.items()
        },
    )
