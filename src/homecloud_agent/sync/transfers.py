"""Path-keyed registry of in-flight transition tasks.

Every change event starts one transition task (``SYNCING`` -> upload ->
``SYNCED``) for its path.  Keying the tasks by path lets a later change or
delete of the same path cancel the outdated work, and lets engine shutdown
cancel and join everything that is still running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TransferRegistry:
    """Track at most one running task per path."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, path: object) -> bool:
        return path in self._tasks

    def paths(self) -> list[str]:
        return sorted(self._tasks)

    def start(
        self, path: str, coro: Coroutine[Any, Any, Any]
    ) -> asyncio.Task[Any]:
        """Run *coro* as the transition task for *path*.

        A task already registered for *path* is cancelled first.
        """
        self.cancel(path)
        task = asyncio.create_task(coro, name=f"transfer:{path}")
        self._tasks[path] = task
        task.add_done_callback(lambda t: self._on_done(path, t))
        return task

    def cancel(self, path: str) -> bool:
        """Cancel the task for *path*.  Returns ``True`` if one was running."""
        task = self._tasks.pop(path, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Cancelled in-flight transfer for %s", path)
        return True

    async def cancel_all(self) -> None:
        """Cancel every registered task and wait for all of them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.debug("Cancelled %d in-flight transfer(s)", len(tasks))

    async def join(self) -> None:
        """Wait until every currently registered task has finished."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_done(self, path: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(path) is task:
            del self._tasks[path]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Transfer task for %s failed: %s",
                path,
                exc,
                exc_info=exc,
            )
