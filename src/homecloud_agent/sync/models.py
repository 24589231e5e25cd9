"""Pydantic models for the watch-and-track engine.

Defines the core data contracts shared by the engine, the status bus and
every consumer at the boundary (MCP tools, metadata store, server adapter):

- ``SyncStatus``: Per-path synchronization status.
- ``FileEventType`` / ``FileEvent``: Typed filesystem change notification.
- ``FileRecord``: Synchronization state of one tracked entry.
- ``EngineState``: Lifecycle of a ``SyncEngine``.
- ``ScanNesting``: How the initial scan nests files into directories.
- ``BackpressurePolicy``: What publishing does when the status bus is full.

All models are frozen (immutable).  ``to_wire()`` produces the camelCase
JSON shape consumed by the persistence and transmission layers; that shape
must stay stable.  Unset record timestamps are written as ``ZERO_TIME``
rather than ``null``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

ZERO_TIME = "0001-01-01T00:00:00Z"
_TIMESTAMP_KEYS = ("lastModified", "lastSynced")


class SyncStatus(str, Enum):
    """Synchronization status of a tracked path."""

    NOT_SYNCED = "NOT_SYNCED"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"


class FileEventType(str, Enum):
    """Kinds of filesystem change the engine understands."""

    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    RENAMED = "RENAMED"


class EngineState(str, Enum):
    """Lifecycle states of a ``SyncEngine``."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class ScanNesting(str, Enum):
    """Nesting policy of the initial directory scan.

    ``LEGACY`` nests a file into its parent only when the parent was already
    visited, and keeps nested files out of the live map.  ``TREE`` tracks every
    entry as a flat record; directory children are derived when read.
    """

    LEGACY = "legacy"
    TREE = "tree"


class BackpressurePolicy(str, Enum):
    """Behaviour of ``StatusBus.publish()`` when the bus is full."""

    BLOCK = "block"
    DROP_OLDEST = "drop_oldest"


class FileEvent(BaseModel):
    """A filesystem change, consumed once by the engine.

    Attributes:
        type: Kind of change.
        path: Absolute path of the affected entry (source path for renames).
        timestamp: When the change was observed.
        dest_path: New path for ``RENAMED`` events, ``None`` otherwise.
    """

    type: FileEventType
    path: str
    timestamp: datetime
    dest_path: str | None = Field(default=None, alias="destPath")

    model_config = {"frozen": True, "populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible wire shape of this event."""
        data = self.model_dump(mode="json", by_alias=True)
        if self.dest_path is None:
            data.pop("destPath")
        return data


class FileRecord(BaseModel):
    """Synchronization state of one tracked filesystem entry.

    Attributes:
        path: Absolute path, the unique key of the record.
        status: Current synchronization status.
        last_modified: Modification time of the entry (or of the event).
        size: Size in bytes (0 for directories and event-created records).
        is_downloaded: True when the content is present locally.
        is_directory: True for directories.
        version: Record version; 1 for every tracked record, 0 for removals.
        checksum: MD5 hex digest of the content, when computed.
        last_synced: When the entry last reached ``SYNCED``.
        children: Direct children of a directory, captured by the initial
            scan.  Keyed by entry name.
    """

    path: str
    status: SyncStatus
    last_modified: datetime | None = Field(default=None, alias="lastModified")
    size: int = 0
    is_downloaded: bool = Field(default=False, alias="isDownloaded")
    is_directory: bool = Field(default=False, alias="isDirectory")
    version: int = 0
    checksum: str | None = None
    last_synced: datetime | None = Field(default=None, alias="lastSynced")
    children: dict[str, FileRecord] = Field(
        default_factory=dict, alias="filesContent"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @classmethod
    def removal(cls, path: str) -> FileRecord:
        """Terminal snapshot published when *path* stops being tracked."""
        return cls(path=path, status=SyncStatus.NOT_SYNCED)

    @property
    def is_removal(self) -> bool:
        """True for the terminal snapshot of a deleted path."""
        return self.version == 0

    def with_status(self, status: SyncStatus, **changes: Any) -> FileRecord:
        """Return a copy of this record with *status* and *changes* applied."""
        return self.model_copy(update={"status": status, **changes})

    def detached(self) -> FileRecord:
        """Return a deep copy sharing no mutable state with this record."""
        return self.model_copy(deep=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible wire shape of this record.

        ``checksum`` and ``filesContent`` are omitted when empty; unset
        timestamps are written as ``ZERO_TIME``.
        """
        data = self.model_dump(mode="json", by_alias=True, exclude={"children"})
        for key in _TIMESTAMP_KEYS:
            if data[key] is None:
                data[key] = ZERO_TIME
        if not self.checksum:
            data.pop("checksum")
        if self.children:
            data["filesContent"] = {
                name: child.to_wire()
                for name, child in self.children.items()
            }
        return data

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> FileRecord:
        """Parse a record from its wire shape."""
        return cls.model_validate(_unset_zero_times(data))


def _unset_zero_times(data: dict[str, Any]) -> dict[str, Any]:
    data = dict(data)
    for key in _TIMESTAMP_KEYS:
        if data.get(key) == ZERO_TIME:
            data[key] = None
    children = data.get("filesContent")
    if children:
        data["filesContent"] = {
            name: _unset_zero_times(child) for name, child in children.items()
        }
    return data


FileRecord.model_rebuild()
