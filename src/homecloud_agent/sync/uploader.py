"""Upload seam of the transition task.

No remote transfer protocol exists yet: ``SimulatedUploader`` stands in for
one by waiting a fixed latency.  Real uploaders plug in here, and this is
also where failures enter the state machine: ``upload_with_retry`` retries
``UploadError`` with exponential backoff and re-raises once the retry budget
is spent, which the engine turns into ``SyncStatus.ERROR``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .errors import UploadError
from .models import FileRecord

logger = logging.getLogger(__name__)

DEFAULT_LATENCY = 2.0


class Uploader(Protocol):
    """Anything that can transfer one record's content."""

    async def upload(self, record: FileRecord) -> None: ...


class SimulatedUploader:
    """Pretend to upload by sleeping for *latency* seconds. Never fails."""

    def __init__(self, latency: float = DEFAULT_LATENCY) -> None:
        self.latency = latency

    async def upload(self, record: FileRecord) -> None:
        await asyncio.sleep(self.latency)


async def upload_with_retry(
    uploader: Uploader,
    record: FileRecord,
    max_retries: int = 3,
    backoff: float = 0.5,
) -> int:
    """Upload *record*, retrying ``UploadError`` with exponential backoff.

    Args:
        uploader: Uploader to call.
        record: Snapshot of the record being uploaded.
        max_retries: Retries after the first attempt (0 disables retrying).
        backoff: Delay before the first retry; doubled after each retry.

    Returns:
        Number of attempts it took.

    Raises:
        UploadError: The last failure, once all retries are exhausted.
    """
    attempt = 0
    delay = backoff
    while True:
        attempt += 1
        try:
            await uploader.upload(record)
            return attempt
        except UploadError as e:
            if attempt > max_retries:
                logger.error(
                    "Upload of %s failed after %d attempt(s): %s",
                    record.path,
                    attempt,
                    e,
                )
                raise
            logger.warning(
                "Upload of %s failed (attempt %d/%d), retrying in %.2fs: %s",
                record.path,
                attempt,
                max_retries + 1,
                delay,
                e,
            )
            await asyncio.sleep(delay)
            delay *= 2
