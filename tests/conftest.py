"""Shared pytest fixtures for homecloud-agent tests."""

import asyncio
from datetime import datetime, timezone

import pytest

from homecloud_agent.sync.bus import StatusBus
from homecloud_agent.sync.engine import SyncEngine
from homecloud_agent.sync.errors import UploadError
from homecloud_agent.sync.models import FileEvent, FileEventType, FileRecord
from homecloud_agent.sync.scanner import DirectoryScanner


class FakeEventSource:
    """Stands in for EventSource: tests push events by hand."""

    instances: list["FakeEventSource"] = []

    def __init__(self, watch_dir, events):
        self.watch_dir = watch_dir
        self.events = events
        self.starts = 0
        self.stops = 0
        self.running = False
        self.degraded = False
        self.error_count = 0
        FakeEventSource.instances.append(self)

    async def start(self):
        self.starts += 1
        self.running = True

    async def stop(self):
        self.stops += 1
        self.running = False

    async def emit(self, event_type, path, dest_path=None):
        await self.events.put(
            FileEvent(
                type=event_type,
                path=path,
                timestamp=datetime.now(timezone.utc),
                dest_path=dest_path,
            )
        )


class GatedUploader:
    """Uploader that waits until the test opens the gate."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.uploads: list[str] = []

    async def upload(self, record: FileRecord) -> None:
        self.uploads.append(record.path)
        await self.gate.wait()


class FailingUploader:
    def __init__(self):
        self.attempts = 0

    async def upload(self, record: FileRecord) -> None:
        self.attempts += 1
        raise UploadError(f"remote rejected {record.path}")


class InstantUploader:
    async def upload(self, record: FileRecord) -> None:
        await asyncio.sleep(0)


@pytest.fixture
def sample_tree(tmp_path):
    """Watch directory holding a.txt (10 bytes) and docs/b.txt."""
    root = tmp_path / "watch"
    (root / "docs").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"0123456789")
    (root / "docs" / "b.txt").write_text("hello")
    return root


@pytest.fixture
def fake_sources():
    FakeEventSource.instances = []
    yield FakeEventSource.instances
    FakeEventSource.instances = []


@pytest.fixture
async def make_engine(sample_tree, fake_sources):
    """Factory for engines wired to a FakeEventSource."""
    engines: list[SyncEngine] = []

    def _make(**kwargs):
        kwargs.setdefault("uploader", InstantUploader())
        kwargs.setdefault("status_bus", StatusBus(capacity=1000))
        kwargs.setdefault("scanner", DirectoryScanner())
        kwargs.setdefault("event_source_factory", FakeEventSource)
        kwargs.setdefault("retry_backoff", 0)
        engine = SyncEngine(sample_tree, **kwargs)
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.close()


@pytest.fixture
def fake_source_cls():
    """The ``FakeEventSource`` class, for tests that subclass or pass it."""
    return FakeEventSource


@pytest.fixture
def gated_uploader():
    return GatedUploader()


@pytest.fixture
def failing_uploader():
    return FailingUploader()


@pytest.fixture
def drain():
    """Factory: pop every snapshot queued on a bus without waiting."""

    def _drain(bus: StatusBus) -> list[FileRecord]:
        records = []
        while bus.qsize():
            records.append(bus._queue.get_nowait())
        return records

    return _drain


@pytest.fixture
def wait_for_status():
    """Factory: poll until a path has the given status in an engine."""

    async def _wait(engine, path, status, timeout=2.0):
        async def _poll():
            while True:
                record = engine.get(path)
                if record is not None and record.status is status:
                    return record
                await asyncio.sleep(0.005)

        return await asyncio.wait_for(_poll(), timeout)

    return _wait
