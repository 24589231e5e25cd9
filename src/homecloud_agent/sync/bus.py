"""Bounded, ordered channel carrying record snapshots to one subscriber.

The capacity and the full-bus behaviour are explicit settings rather than
an incidental buffer size:

* ``BackpressurePolicy.BLOCK`` -- a publisher waits for space.  Nothing is
  ever dropped; a slow subscriber slows the engine down.
* ``BackpressurePolicy.DROP_OLDEST`` -- the oldest queued snapshot is evicted
  and counted in ``dropped``.  Publishing never waits.

Once ``close()`` is called, ``publish()`` sends nothing and returns
``False``, including for publishers that were blocked at the time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from ..core.async_utils import await_unless_set
from .models import BackpressurePolicy, FileRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class StatusBus:
    """Single-consumer status channel.

    Args:
        capacity: Maximum number of queued snapshots.
        policy: Behaviour of ``publish()`` when the bus is full.

    Example::

        bus = StatusBus(capacity=100)
        async for record in bus:
            print(record.path, record.status.value)
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        policy: BackpressurePolicy = BackpressurePolicy.BLOCK,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"StatusBus capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.policy = BackpressurePolicy(policy)
        self._queue: asyncio.Queue[FileRecord] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self.published = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def publish(self, record: FileRecord) -> bool:
        """Queue a deep copy of *record* for the subscriber.

        Returns:
            ``True`` if the snapshot was queued, ``False`` if the bus is
            (or became) closed.
        """
        if self.closed:
            return False

        snapshot = record.detached()

        if self.policy is BackpressurePolicy.DROP_OLDEST:
            if self._queue.full():
                self._queue.get_nowait()
                self.dropped += 1
                logger.debug(
                    "Status bus full, dropped oldest snapshot (%d dropped)",
                    self.dropped,
                )
            self._queue.put_nowait(snapshot)
            self.published += 1
            return True

        if not self._queue.full():
            self._queue.put_nowait(snapshot)
            self.published += 1
            return True

        queued, _ = await await_unless_set(
            self._queue.put(snapshot), self._closed
        )
        if queued:
            self.published += 1
        return queued

    async def get(self) -> FileRecord | None:
        """Return the next snapshot, or ``None`` once closed and drained."""
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self.closed:
                return None
            received, record = await await_unless_set(
                self._queue.get(), self._closed
            )
            if received:
                return record

    def close(self) -> None:
        """Close the bus.  Already queued snapshots remain readable."""
        if not self.closed:
            logger.debug(
                "Closing status bus (%d queued, %d published, %d dropped)",
                self._queue.qsize(),
                self.published,
                self.dropped,
            )
        self._closed.set()

    async def __aiter__(self) -> AsyncIterator[FileRecord]:
        while True:
            record = await self.get()
            if record is None:
                return
            yield record
