"""Shared pytest fixtures for the mediaingest test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.interfaces.metadata_store import IMetadataStore
from mediaingest.models.events import ProgressEvent
from mediaingest.models.ingestion import (
    IngestionJob,
    PersistedFileRecord,
    ProviderFileHandle,
    ProviderFileState,
    SourceMode,
)

UPLOAD_URL = "https://upload.example.test/session/1"
PROVIDER_FILE_NAME = "files/abc123"
PROVIDER_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc123"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFileProvider(IFileAPIProvider):
    """Scripted provider: ``states`` are returned by successive status calls.

    The last state repeats once the script runs out.
    """

    def __init__(
        self,
        states: list[ProviderFileState] | None = None,
        name: str = PROVIDER_FILE_NAME,
        uri: str = PROVIDER_URI,
        available: bool = True,
        size_bytes: int | None = None,
    ) -> None:
        self.states = list(states or [ProviderFileState.ACTIVE])
        self.name = name
        self.uri = uri
        self.size_bytes = size_bytes
        self.available = available
        self.started: list[dict[str, Any]] = []
        self.uploaded: list[bytes] = []
        self.status_calls = 0

    async def start_upload(self, total_bytes: int, mime_type: str, display_name: str) -> str:
        self.started.append(
            {"total_bytes": total_bytes, "mime_type": mime_type, "display_name": display_name}
        )
        return UPLOAD_URL

    async def upload_and_finalize(self, upload_url: str, data: bytes) -> ProviderFileHandle:
        self.uploaded.append(data)
        return ProviderFileHandle(name=self.name, uri=self.uri, state=ProviderFileState.PROCESSING)

    async def get_file(self, name: str) -> ProviderFileHandle:
        self.status_calls += 1
        state = self.states[min(self.status_calls, len(self.states)) - 1]
        return ProviderFileHandle(name=name, uri=self.uri, state=state, size_bytes=self.size_bytes)

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return self.available


class BlockingFileProvider(FakeFileProvider):
    """Status calls hang until cancelled; records the cancellation."""

    def __init__(self) -> None:
        super().__init__()
        self.polling = asyncio.Event()
        self.cancelled = False

    async def get_file(self, name: str) -> ProviderFileHandle:
        self.status_calls += 1
        self.polling.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("unreachable")


class InMemoryMetadataStore(IMetadataStore):
    """Dict-backed store with the same insert-if-absent semantics as SQLite."""

    def __init__(self) -> None:
        self.records: dict[str, PersistedFileRecord] = {}
        self.save_calls = 0

    async def initialize(self) -> None:
        return None

    async def save_file(self, record: PersistedFileRecord) -> PersistedFileRecord:
        self.save_calls += 1
        return self.records.setdefault(record.id, record)

    async def get_file(self, tenant_id: str, file_id: str) -> PersistedFileRecord | None:
        record = self.records.get(file_id)
        if record is None or record.tenant_id != tenant_id:
            return None
        return record

    async def list_files(self, tenant_id: str, limit: int = 100) -> list[PersistedFileRecord]:
        rows = [r for r in self.records.values() if r.tenant_id == tenant_id]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit]


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records durations and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class EventCollector:
    """ProgressCallback that keeps every reported event."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    async def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def payloads(self) -> list[dict[str, Any]]:
        return [e.to_payload() for e in self.events]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_provider() -> FakeFileProvider:
    return FakeFileProvider()


@pytest.fixture
def memory_store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()


@pytest.fixture
def upload_job() -> IngestionJob:
    """A fresh upload-mode job for a 1 KB MP4."""
    return IngestionJob(
        tenant_id="tenant-a",
        source_mode=SourceMode.UPLOAD,
        display_name="clip.mp4",
        mime_type="video/mp4",
        raw_byte_length=1024,
    )
