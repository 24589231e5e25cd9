"""Watch-and-track sync engine.

Keeps an authoritative in-memory model of every tracked entry below one
watch directory and publishes each status transition to a subscriber.

Architecture
------------
OS notifications reach a watchdog observer thread, are bridged onto the
event loop by the ``EventSource`` and classified into typed ``FileEvent``
objects.  A single dispatch task in the ``SyncEngine`` applies them to the
record map and starts one cancelable transition task per changed path.
Every transition is published, deep-copied, on the ``StatusBus``.

Modules:

- ``models``    -- ``FileRecord``, ``FileEvent``, ``SyncStatus`` and the
  enums used by configuration.
- ``errors``    -- ``SyncAgentError`` hierarchy.
- ``watcher``   -- ``EventSource``: watchdog -> typed events.
- ``scanner``   -- ``DirectoryScanner``: initial scan, nesting policies.
- ``bus``       -- ``StatusBus``: bounded channel, explicit backpressure.
- ``transfers`` -- ``TransferRegistry``: path-keyed transition tasks.
- ``uploader``  -- Upload seam, simulated latency and retry/backoff.
- ``engine``    -- ``SyncEngine``: lifecycle, dispatch, status machine.

Usage example
-------------
::

    from homecloud_agent.sync import SyncEngine

    async with SyncEngine("/home/me/homecloud") as engine:
        print(len(engine.snapshot()), "records tracked")
        async for record in engine.status_bus:
            print(record.path, record.status.value)
"""

from .bus import StatusBus
from .engine import SyncEngine
from .errors import (
    AlreadyRunningError,
    SyncAgentError,
    UploadError,
    WatchError,
)
from .models import (
    BackpressurePolicy,
    EngineState,
    FileEvent,
    FileEventType,
    FileRecord,
    ScanNesting,
    SyncStatus,
)
from .scanner import DirectoryScanner
from .transfers import TransferRegistry
from .uploader import SimulatedUploader, upload_with_retry
from .watcher import EventSource

__all__ = [
    "AlreadyRunningError",
    "BackpressurePolicy",
    "DirectoryScanner",
    "EngineState",
    "EventSource",
    "FileEvent",
    "FileEventType",
    "FileRecord",
    "ScanNesting",
    "SimulatedUploader",
    "StatusBus",
    "SyncAgentError",
    "SyncEngine",
    "SyncStatus",
    "TransferRegistry",
    "UploadError",
    "WatchError",
    "upload_with_retry",
]
