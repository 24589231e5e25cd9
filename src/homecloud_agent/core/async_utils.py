"""Async utilities shared by the watcher, the engine and the status bus."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for the initial directory scan, checksum computation and joining
    the watchdog observer thread.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        records = await run_sync(scanner.scan, watch_dir)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def await_unless_set(
    aw: Awaitable[T], event: asyncio.Event
) -> tuple[bool, T | None]:
    """Await *aw* unless *event* gets set first.

    The losing side is cancelled.  Queue operations are safe to race this
    way: a cancelled ``Queue.put`` enqueues nothing and a cancelled
    ``Queue.get`` leaves the item queued.

    Args:
        aw: Awaitable to run (typically ``queue.put(...)`` or ``queue.get()``).
        event: Signal that abandons the wait when set.

    Returns:
        ``(True, result)`` when *aw* finished, ``(False, None)`` when the
        event was set first.
    """
    task = asyncio.ensure_future(aw)
    if event.is_set():
        task.cancel()
        return False, None

    waiter = asyncio.ensure_future(event.wait())
    try:
        await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task.done() and not task.cancelled():
        return True, task.result()
    return False, None
