"""EventSource: watchdog notifications -> typed ``FileEvent`` stream.

A watchdog ``Observer`` delivers notifications on its own thread.  The
handler converts each one into a ``RawEvent`` (a set of raw operations, like
the host facility reports them) and hands it to the event loop with
``call_soon_threadsafe``.  A single translation task then classifies raw
events and forwards typed events to the engine's queue.

Classification precedence is Create > Write > Remove > Rename, first match
wins; a raw event matching none of them is reported as ``MODIFIED``.

Errors never reach the engine: they are logged, counted in ``error_count``
and reflected by ``degraded``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.async_utils import run_sync
from .errors import AlreadyRunningError, WatchError
from .models import FileEvent, FileEventType
from .scanner import is_ignored

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_INTERVAL = 2.0
_OBSERVER_JOIN_TIMEOUT = 5.0


class RawOp(str, Enum):
    """Raw operations reported by the host notification facility."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"
    CHMOD = "chmod"


@dataclass(frozen=True, slots=True)
class RawEvent:
    """One untyped notification, as delivered by the observer thread."""

    ops: frozenset[RawOp]
    path: str
    dest_path: str | None = None
    is_directory: bool = False


_WATCHDOG_OPS: dict[str, RawOp] = {
    "created": RawOp.CREATE,
    "modified": RawOp.WRITE,
    "deleted": RawOp.REMOVE,
    "moved": RawOp.RENAME,
}

# Access notifications, not changes.
_SKIPPED_EVENT_TYPES = frozenset({"opened", "closed", "closed_no_write"})


def classify(ops: Iterable[RawOp]) -> FileEventType:
    """Map raw operations to an event type (Create > Write > Remove > Rename)."""
    ops = frozenset(ops)
    if RawOp.CREATE in ops:
        return FileEventType.CREATED
    if RawOp.WRITE in ops:
        return FileEventType.MODIFIED
    if RawOp.REMOVE in ops:
        return FileEventType.DELETED
    if RawOp.RENAME in ops:
        return FileEventType.RENAMED
    return FileEventType.MODIFIED


class _ObserverHandler(FileSystemEventHandler):
    """Runs on the observer thread; forwards raw events to the loop."""

    def __init__(self, source: EventSource) -> None:
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            raw = self._source.to_raw(event)
        except Exception as e:
            self._source.record_error("Failed to convert %r: %s", event, e)
            return
        if raw is not None:
            self._source.post_threadsafe(raw)


class EventSource:
    """Watch one directory and emit typed events into *events*.

    Args:
        watch_dir: Directory to watch.
        events: Queue the engine consumes ``FileEvent`` objects from.
        recursive: Register subdirectories with the observer as well.  With
            ``False`` only direct children of *watch_dir* are reported.
        ignore_patterns: Glob patterns matched against entry names.
        observer_factory: Callable returning a watchdog observer.
        health_interval: Seconds between observer liveness checks.
    """

    def __init__(
        self,
        watch_dir: str | os.PathLike[str],
        events: asyncio.Queue[FileEvent],
        *,
        recursive: bool = True,
        ignore_patterns: Iterable[str] = (),
        observer_factory: Callable[[], Any] = Observer,
        health_interval: float = DEFAULT_HEALTH_INTERVAL,
    ) -> None:
        self.watch_dir = os.path.abspath(os.fspath(watch_dir))
        self.recursive = recursive
        self.ignore_patterns = tuple(ignore_patterns)
        self.health_interval = health_interval
        self.error_count = 0
        self._events = events
        self._observer_factory = observer_factory
        self._observer: Any = None
        self._raw: asyncio.Queue[RawEvent] = asyncio.Queue()
        self._stopping = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._observer_dead = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def degraded(self) -> bool:
        """True once any error was recorded or the observer thread died."""
        return self.error_count > 0 or self._observer_dead

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Register the directory and launch the translation loop.

        Raises:
            AlreadyRunningError: If the source is already running.
            WatchError: If the directory cannot be registered.
        """
        if self._running:
            raise AlreadyRunningError("watcher is already running")
        if not os.path.isdir(self.watch_dir):
            raise WatchError(
                f"failed to add directory to watcher: {self.watch_dir} "
                "is not a directory"
            )

        self._loop = asyncio.get_running_loop()
        self._stopping = asyncio.Event()
        self._raw = asyncio.Queue()
        self._observer_dead = False

        observer = self._observer_factory()
        try:
            observer.schedule(
                _ObserverHandler(self), self.watch_dir, recursive=self.recursive
            )
            await run_sync(observer.start)
        except OSError as e:
            raise WatchError(
                f"failed to add directory to watcher: {self.watch_dir}: {e}"
            ) from e

        self._observer = observer
        self._running = True
        self._task = asyncio.create_task(
            self._translate_loop(), name=f"watch:{self.watch_dir}"
        )
        logger.info(
            "Watching %s (%s)",
            self.watch_dir,
            "recursive" if self.recursive else "top level only",
        )

    async def stop(self) -> None:
        """Stop watching.  No-op when not running."""
        if not self._running:
            return
        self._running = False
        self._stopping.set()

        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            await run_sync(observer.join, _OBSERVER_JOIN_TIMEOUT)
            if observer.is_alive():
                logger.warning(
                    "Observer thread for %s did not exit within %.1fs",
                    self.watch_dir,
                    _OBSERVER_JOIN_TIMEOUT,
                )

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Stopped watching %s", self.watch_dir)

    # ------------------------------------------------------------------
    # Observer thread side
    # ------------------------------------------------------------------

    def to_raw(self, event: FileSystemEvent) -> RawEvent | None:
        """Convert a watchdog event, or return ``None`` to drop it."""
        if event.event_type in _SKIPPED_EVENT_TYPES:
            return None
        # A directory "modified" means its listing changed; children report
        # their own events.
        if event.is_directory and event.event_type == "modified":
            return None

        src = os.fsdecode(event.src_path)
        dest_path = getattr(event, "dest_path", "")
        dest = os.fsdecode(dest_path) if dest_path else None
        op = _WATCHDOG_OPS.get(event.event_type)
        ops = frozenset({op}) if op is not None else frozenset()

        if op is RawOp.RENAME and dest is not None:
            src_ignored = is_ignored(src, self.ignore_patterns)
            dest_ignored = is_ignored(dest, self.ignore_patterns)
            if src_ignored and dest_ignored:
                return None
            if src_ignored:
                # Atomic save: temp file renamed over the real one.
                return RawEvent(
                    frozenset({RawOp.CREATE}), dest, None, event.is_directory
                )
            if dest_ignored:
                return RawEvent(
                    frozenset({RawOp.REMOVE}), src, None, event.is_directory
                )
        elif is_ignored(src, self.ignore_patterns):
            return None

        return RawEvent(ops, src, dest, event.is_directory)

    def post_threadsafe(self, raw: RawEvent) -> None:
        """Hand *raw* to the event loop.  Dropped once stopping."""
        loop = self._loop
        if loop is None or loop.is_closed() or self._stopping.is_set():
            return
        try:
            loop.call_soon_threadsafe(self._enqueue_raw, raw)
        except RuntimeError as e:
            self.record_error("Failed to schedule %s: %s", raw.path, e)

    def _enqueue_raw(self, raw: RawEvent) -> None:
        if not self._stopping.is_set():
            self._raw.put_nowait(raw)

    def record_error(self, msg: str, *args: object) -> None:
        """Log and count a watch error without propagating it."""
        self.error_count += 1
        logger.warning(msg, *args)

    # ------------------------------------------------------------------
    # Event loop side
    # ------------------------------------------------------------------

    def translate(self, raw: RawEvent) -> FileEvent:
        """Turn a raw event into a typed, timestamped ``FileEvent``."""
        event_type = classify(raw.ops)
        return FileEvent(
            type=event_type,
            path=raw.path,
            timestamp=datetime.now(timezone.utc),
            dest_path=raw.dest_path
            if event_type is FileEventType.RENAMED
            else None,
        )

    async def _translate_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                raw = await asyncio.wait_for(
                    self._raw.get(), timeout=self.health_interval
                )
            except asyncio.TimeoutError:
                self._check_health()
                continue

            if self._stopping.is_set():
                break
            event = self.translate(raw)
            logger.debug("%s %s", event.type.value, event.path)
            await self._events.put(event)

    def _check_health(self) -> None:
        observer = self._observer
        if (
            observer is not None
            and not self._observer_dead
            and not observer.is_alive()
        ):
            self._observer_dead = True
            self.record_error(
                "Observer thread for %s is no longer running; "
                "changes are not being watched",
                self.watch_dir,
            )
