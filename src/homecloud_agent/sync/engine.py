"""SyncEngine: the authoritative model of every tracked entry.

The engine ties together scanner, event source, transfer registry, uploader
and status bus.  It:

1. Refuses to start unless stopped (checked before anything else).
2. Scans the watch directory and replaces the record map wholesale.
3. Starts the ``EventSource`` and a single dispatch task consuming it.
4. Routes ``CREATED``/``MODIFIED`` to the change handler, ``DELETED`` to the
   delete handler, and ``RENAMED`` to a delete of the old path followed by a
   change of the new one.
5. Drives each changed path through ``NOT_SYNCED -> SYNCING -> SYNCED``
   (or ``ERROR`` once upload retries are exhausted) in a cancelable,
   path-keyed transition task.
6. Publishes a deep copy of every transition on the ``StatusBus``.

The record map and the lifecycle state share one ``threading.Lock``.  It is
never held across an ``await``, so ``snapshot()`` and ``get()`` are safe to
call from other threads (e.g. a GUI thread) as well as from the loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import threading
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol

from ..core.async_utils import run_sync
from .bus import StatusBus
from .errors import AlreadyRunningError, UploadError
from .models import (
    EngineState,
    FileEvent,
    FileEventType,
    FileRecord,
    ScanNesting,
    SyncStatus,
)
from .scanner import DirectoryScanner
from .transfers import TransferRegistry
from .uploader import SimulatedUploader, Uploader, upload_with_retry
from .watcher import EventSource

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

DEFAULT_EVENT_CAPACITY = 1000


class EventSourceLike(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...


EventSourceFactory = Callable[[str, "asyncio.Queue[FileEvent]"], EventSourceLike]


class SyncEngine:
    """Watch one directory and track the sync state of its entries.

    Args:
        watch_dir: Directory to track.
        scanner: Scanner used by ``start()``; defaults to a ``tree`` scanner.
        uploader: Upload seam of the transition task; defaults to
            ``SimulatedUploader``.
        status_bus: Bus receiving record snapshots.
        event_source_factory: ``(watch_dir, queue) -> EventSource``.
        event_capacity: Bound of the queue between event source and engine.
        max_retries: Upload retries before a path is marked ``ERROR``.
        retry_backoff: Delay before the first upload retry, in seconds.

    Example::

        engine = SyncEngine("/home/me/homecloud")
        await engine.start()
        async for record in engine.status_bus:
            print(record.path, record.status.value)
    """

    def __init__(
        self,
        watch_dir: str | os.PathLike[str],
        *,
        scanner: DirectoryScanner | None = None,
        uploader: Uploader | None = None,
        status_bus: StatusBus | None = None,
        event_source_factory: EventSourceFactory | None = None,
        event_capacity: int = DEFAULT_EVENT_CAPACITY,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
    ) -> None:
        self.watch_dir = os.path.abspath(os.fspath(watch_dir))
        self.scanner = scanner or DirectoryScanner()
        self.uploader = uploader or SimulatedUploader()
        self.status_bus = status_bus or StatusBus()
        self.event_capacity = event_capacity
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._event_source_factory: EventSourceFactory = (
            event_source_factory or EventSource
        )

        self._lock = threading.Lock()
        self._records: dict[str, FileRecord] = {}
        self._state = EngineState.STOPPED

        self._transfers = TransferRegistry()
        self._shutdown = asyncio.Event()
        self._events: asyncio.Queue[FileEvent] | None = None
        self._event_source: EventSourceLike | None = None
        self._dispatch_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> SyncEngine:
        """Build an engine from a validated ``Config``.

        Keyword *overrides* replace the constructed collaborators (e.g.
        ``uploader=...`` in tests).
        """
        kwargs: dict[str, Any] = {
            "scanner": DirectoryScanner(
                ignore_patterns=config.ignore_patterns,
                nesting=config.scan_nesting,
                compute_checksums=config.compute_checksums,
            ),
            "uploader": SimulatedUploader(config.sync_latency),
            "status_bus": StatusBus(
                capacity=config.status_capacity,
                policy=config.backpressure,
            ),
            "event_source_factory": functools.partial(
                EventSource,
                recursive=config.recursive_watch,
                ignore_patterns=config.ignore_patterns,
            ),
            "event_capacity": config.event_capacity,
            "max_retries": config.max_retries,
            "retry_backoff": config.retry_backoff,
        }
        kwargs.update(overrides)
        return cls(config.watch_dir, **kwargs)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    @property
    def event_source(self) -> EventSourceLike | None:
        return self._event_source

    @property
    def in_flight(self) -> list[str]:
        """Paths with a running transition task."""
        return self._transfers.paths()

    def snapshot(self) -> list[FileRecord]:
        """Return isolated copies of every tracked record, sorted by path.

        With ``tree`` nesting each directory carries the current records of
        its direct children.
        """
        with self._lock:
            records = [self._records[path] for path in sorted(self._records)]
            if not self._derives_children:
                return [record.detached() for record in records]
            by_parent: dict[str, dict[str, FileRecord]] = {}
            for record in records:
                by_parent.setdefault(os.path.dirname(record.path), {})[
                    os.path.basename(record.path)
                ] = record
            return [
                _with_children(record, by_parent.get(record.path))
                for record in records
            ]

    def get(self, path: str) -> FileRecord | None:
        """Return an isolated copy of the record for *path*, if tracked."""
        with self._lock:
            record = self._records.get(path)
            if record is None:
                return None
            if not self._derives_children:
                return record.detached()
            names = sorted(
                child
                for child in self._records
                if os.path.dirname(child) == path
            )
            children = {
                os.path.basename(child): self._records[child] for child in names
            }
            return _with_children(record, children)

    @property
    def _derives_children(self) -> bool:
        return self.scanner.nesting is ScanNesting.TREE

    def status_counts(self) -> dict[SyncStatus, int]:
        """Number of tracked records per status."""
        with self._lock:
            counts = Counter(r.status for r in self._records.values())
        return {status: counts.get(status, 0) for status in SyncStatus}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Scan the watch directory, then start watching it.

        Raises:
            AlreadyRunningError: If the engine is not stopped.  Nothing is
                scanned in that case.
            WatchError: If the event source cannot register the directory.
        """
        with self._lock:
            if self._state is not EngineState.STOPPED:
                raise AlreadyRunningError(
                    f"sync engine is already {self._state.value}"
                )
            self._state = EngineState.STARTING

        try:
            records = await run_sync(self.scanner.scan, self.watch_dir)
            with self._lock:
                self._records = records

            self._shutdown = asyncio.Event()
            events: asyncio.Queue[FileEvent] = asyncio.Queue(
                maxsize=self.event_capacity
            )
            source = self._event_source_factory(self.watch_dir, events)
            await source.start()
        except BaseException:
            with self._lock:
                self._state = EngineState.STOPPED
            raise

        self._events = events
        self._event_source = source
        self._dispatch_task = asyncio.create_task(
            self._process_events(events), name="sync-engine-dispatch"
        )
        with self._lock:
            self._state = EngineState.RUNNING
        logger.info(
            "Sync engine running for %s (%d tracked records)",
            self.watch_dir,
            len(records),
        )

    async def stop(self) -> None:
        """Stop watching and cancel in-flight work.  No-op unless running.

        Once this returns no task of this run publishes anything.  Records
        stay readable until the next ``start()`` replaces them.
        """
        with self._lock:
            if self._state is not EngineState.RUNNING:
                return
            self._state = EngineState.STOPPING

        self._shutdown.set()
        try:
            source, self._event_source = self._event_source, None
            if source is not None:
                await source.stop()

            task, self._dispatch_task = self._dispatch_task, None
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            await self._transfers.cancel_all()
        finally:
            self._events = None
            with self._lock:
                self._state = EngineState.STOPPED
        logger.info("Sync engine stopped for %s", self.watch_dir)

    async def set_watch_dir(self, watch_dir: str | os.PathLike[str]) -> None:
        """Switch to *watch_dir* and restart with a fresh scan.

        Stops the engine, creates the directory if it is missing, then starts
        again so every record of the old directory is replaced.  If any step
        fails the engine stays ``STOPPED`` and the error propagates.

        Raises:
            AlreadyRunningError: If another start or stop is in progress.
            OSError: If the directory cannot be created.
            WatchError: If the new directory cannot be watched.
        """
        new_dir = os.path.abspath(os.fspath(watch_dir))
        await self.stop()
        await run_sync(os.makedirs, new_dir, exist_ok=True)
        previous, self.watch_dir = self.watch_dir, new_dir
        logger.info("Switching watch directory from %s to %s", previous, new_dir)
        await self.start()

    async def close(self) -> None:
        """Stop the engine and close the status bus."""
        await self.stop()
        self.status_bus.close()

    async def __aenter__(self) -> SyncEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    async def _process_events(self, events: asyncio.Queue[FileEvent]) -> None:
        while True:
            event = await events.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception(
                    "Failed to handle %s event for %s",
                    event.type.value,
                    event.path,
                )

    async def dispatch(self, event: FileEvent) -> None:
        """Apply one event to the record map."""
        match event.type:
            case FileEventType.CREATED | FileEventType.MODIFIED:
                await self._handle_change(event.path, event.timestamp)
            case FileEventType.DELETED:
                await self._handle_delete(event.path)
            case FileEventType.RENAMED:
                await self._handle_delete(event.path)
                if event.dest_path:
                    await self._handle_change(event.dest_path, event.timestamp)
                else:
                    logger.debug(
                        "Rename of %s without destination treated as delete",
                        event.path,
                    )

    async def _handle_change(self, path: str, timestamp: datetime) -> None:
        record = FileRecord(
            path=path,
            status=SyncStatus.NOT_SYNCED,
            last_modified=timestamp,
            is_downloaded=True,
            version=1,
        )
        self._transfers.cancel(path)
        with self._lock:
            self._records[path] = record
        await self._publish(record)
        self._transfers.start(path, self._transition(path))

    async def _handle_delete(self, path: str) -> None:
        self._transfers.cancel(path)
        with self._lock:
            removed = self._records.pop(path, None)
        if removed is None:
            return
        logger.debug("No longer tracking %s", path)
        await self._publish(FileRecord.removal(path))

    # ------------------------------------------------------------------
    # Status machine
    # ------------------------------------------------------------------

    async def _transition(self, path: str) -> None:
        record = await self._set_status(path, SyncStatus.SYNCING)
        if record is None:
            return
        try:
            await upload_with_retry(
                self.uploader,
                record,
                max_retries=self.max_retries,
                backoff=self.retry_backoff,
            )
        except UploadError:
            await self._set_status(path, SyncStatus.ERROR)
            return
        await self._set_status(
            path, SyncStatus.SYNCED, last_synced=datetime.now(timezone.utc)
        )

    async def _set_status(
        self, path: str, status: SyncStatus, **changes: Any
    ) -> FileRecord | None:
        """Replace the record for *path* with *status*; ``None`` if gone."""
        if self._shutdown.is_set():
            return None
        with self._lock:
            current = self._records.get(path)
            if current is None:
                return None
            updated = current.with_status(status, **changes)
            self._records[path] = updated
        await self._publish(updated)
        return updated

    async def _publish(self, record: FileRecord) -> None:
        if self._shutdown.is_set():
            logger.debug(
                "Engine shutting down, not publishing %s for %s",
                record.status.value,
                record.path,
            )
            return
        await self.status_bus.publish(record)


def _with_children(
    record: FileRecord, children: dict[str, FileRecord] | None
) -> FileRecord:
    if not children:
        return record.detached()
    return record.model_copy(
        update={
            "children": {
                name: child.detached() for name, child in children.items()
            }
        }
    )
