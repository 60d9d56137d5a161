"""Unit tests for IngestionAPIClient and DirectUploadRunner.

The server side is an ``httpx.MockTransport`` handler that answers with
canned event-stream bodies and JSON records.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from mediaingest.client.api_client import IngestionAPIClient
from mediaingest.client.direct_upload import DirectUploadRunner
from mediaingest.models.events import EventKind, IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import ProviderFileState
from mediaingest.pipeline.event_stream import encode_event
from mediaingest.utils.errors import ProcessingFailed, ProviderProtocolError, TransferError, ValidationError
from tests.conftest import PROVIDER_FILE_NAME, PROVIDER_URI, EventCollector, FakeFileProvider

BASE_URL = "http://ingest.test"
NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)  # noqa: UP017


def _stream_body(*events: ProgressEvent) -> bytes:
    return b"".join(encode_event(e) for e in events)


def _record_json(file_id: str = "job-1") -> dict:
    return {
        "id": file_id,
        "title": "clip.mp4",
        "file_name": "clip.mp4",
        "mime_type": "video/mp4",
        "category": "video",
        "size": 64,
        "source_mode": "direct",
        "source_url": None,
        "provider_file_name": PROVIDER_FILE_NAME,
        "provider_uri": PROVIDER_URI,
        "status": "READY",
        "started_at": NOW.isoformat(),
        "created_at": NOW.isoformat(),
    }


def _credential(max_bytes: int = 2000 * 1024 * 1024) -> dict:
    return {
        "token": "tok-123",
        "job_id": "job-1",
        "tenant_id": "tenant-a",
        "api_key": "test-key",
        "provider_base_url": "https://p.example",
        "max_bytes": max_bytes,
        "expires_at": (NOW + timedelta(minutes=15)).isoformat(),
    }


def _api(handler) -> IngestionAPIClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    return IngestionAPIClient(http, tenant_id="tenant-a")


# ======================================================================
# IngestionAPIClient
# ======================================================================


class TestEventStreams:
    @pytest.mark.asyncio
    async def test_import_url_decodes_stream(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = _stream_body(
                ProgressEvent.status(IngestionPhase.VALIDATING),
                ProgressEvent.progress("Fetching clip.mp4 from cdn.example.com..."),
                ProgressEvent.success(file_id="job-1"),
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        events = [e async for e in _api(handler).import_url("https://cdn.example.com/clip.mp4", "Clip")]

        assert [e.kind for e in events] == [EventKind.STATUS, EventKind.PROGRESS, EventKind.SUCCESS]
        request = seen[0]
        assert request.url.path == "/api/v1/ingest/url"
        assert request.headers["X-Tenant-ID"] == "tenant-a"
        assert request.headers["Accept"] == "text/event-stream"
        assert json.loads(request.content) == {"url": "https://cdn.example.com/clip.mp4", "title": "Clip"}

    @pytest.mark.asyncio
    async def test_stops_at_terminal_event(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _stream_body(ProgressEvent.error("nope")) + b'data: {"progress": "late"}\n\n'
            return httpx.Response(200, content=body)

        events = [e async for e in _api(handler).request_direct("a.mp4", 10, "video/mp4")]
        assert [e.to_payload() for e in events] == [{"error": "nope"}]

    @pytest.mark.asyncio
    async def test_upload_file_sends_multipart(self, tmp_path: Path) -> None:
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"v" * 32)
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_stream_body(ProgressEvent.success(file_id="x")))

        events = [e async for e in _api(handler).upload_file(path)]

        assert events[-1].kind is EventKind.SUCCESS
        assert seen[0].headers["content-type"].startswith("multipart/form-data")
        assert b'filename="clip.mp4"' in seen[0].content
        assert b"Content-Type: video/mp4" in seen[0].content

    @pytest.mark.asyncio
    async def test_http_error_before_stream(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"detail": "X-Tenant-ID header is required"})

        with pytest.raises(TransferError) as exc_info:
            async for _ in _api(handler).import_url("https://cdn.example.com/clip.mp4"):
                pass
        assert exc_info.value.status_code == 400
        assert exc_info.value.user_message == "X-Tenant-ID header is required"


class TestJsonEndpoints:
    @pytest.mark.asyncio
    async def test_register_file(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {
                "token": "tok-123",
                "provider_file_name": PROVIDER_FILE_NAME,
            }
            return httpx.Response(201, json=_record_json())

        record = await _api(handler).register_file("tok-123", PROVIDER_FILE_NAME)
        assert record.id == "job-1"
        assert record.provider_uri == PROVIDER_URI

    @pytest.mark.asyncio
    async def test_list_files_passes_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["limit"] == "5"
            return httpx.Response(200, json={"files": [_record_json()], "total": 1})

        listing = await _api(handler).list_files(limit=5)
        assert listing.total == 1
        assert listing.files[0].id == "job-1"

    @pytest.mark.asyncio
    async def test_get_file_missing_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"detail": "No file: job-9"})

        assert await _api(handler).get_file("job-9") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(TransferError) as exc_info:
            await _api(handler).list_files()
        assert exc_info.value.provider_name == "mediaingest-api"
        assert exc_info.value.user_message == "boom"


# ======================================================================
# DirectUploadRunner
# ======================================================================


class DirectServer:
    """MockTransport handler playing the server's part of direct mode."""

    def __init__(self, credential_events: list[ProgressEvent] | None = None) -> None:
        self.credential_events = credential_events
        self.registered: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v1/ingest/direct":
            events = self.credential_events or [
                ProgressEvent.status(IngestionPhase.VALIDATING),
                ProgressEvent.status(IngestionPhase.CREDENTIAL_ISSUED),
                ProgressEvent.success(
                    job_id="job-1",
                    file_name="clip.mp4",
                    mime_type="video/mp4",
                    size=64,
                    credential=_credential(),
                ),
            ]
            return httpx.Response(200, content=_stream_body(*events))
        if request.url.path == "/api/v1/files":
            self.registered.append(json.loads(request.content))
            return httpx.Response(201, json=_record_json())
        return httpx.Response(404)


@pytest.fixture
def clip(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"v" * 64)
    return path


class TestDirectUploadRunner:
    @pytest.mark.asyncio
    async def test_full_handshake(self, clip: Path, collector: EventCollector) -> None:
        server = DirectServer()
        provider = FakeFileProvider([ProviderFileState.ACTIVE])
        runner = DirectUploadRunner(_api(server), provider_factory=lambda credential: provider)

        record = await runner.run(clip, report=collector)

        assert record.id == "job-1"
        assert provider.started == [
            {"total_bytes": 64, "mime_type": "video/mp4", "display_name": "clip.mp4"}
        ]
        assert provider.uploaded == [b"v" * 64]
        assert server.registered == [{"token": "tok-123", "provider_file_name": PROVIDER_FILE_NAME}]
        statuses = [e.message for e in collector.events if e.kind is EventKind.STATUS]
        assert statuses[0] == "VALIDATING"
        assert statuses[-2:] == ["SAVING", "READY"]
        assert not any(e.is_terminal for e in collector.events)

    @pytest.mark.asyncio
    async def test_factory_receives_credential(self, clip: Path) -> None:
        received = []

        def factory(credential):
            received.append(credential)
            return FakeFileProvider()

        await DirectUploadRunner(_api(DirectServer()), provider_factory=factory).run(clip)

        assert received[0].api_key == "test-key"
        assert received[0].provider_base_url == "https://p.example"

    @pytest.mark.asyncio
    async def test_credential_stream_closed_before_upload(self, clip: Path) -> None:
        api = _api(DirectServer())
        request_direct = api.request_direct
        closed: list[bool] = []

        async def tracked(*args, **kwargs):
            try:
                async for event in request_direct(*args, **kwargs):
                    yield event
            finally:
                closed.append(True)

        api.request_direct = tracked
        provider = FakeFileProvider()

        def factory(credential):
            # The credential stream is already released when the upload starts.
            assert closed == [True]
            return provider

        await DirectUploadRunner(api, provider_factory=factory).run(clip)

        assert provider.uploaded == [b"v" * 64]

    @pytest.mark.asyncio
    async def test_refused_by_server(self, clip: Path) -> None:
        server = DirectServer([ProgressEvent.error("Maximum size for video is 2000MB")])
        runner = DirectUploadRunner(_api(server), provider_factory=lambda c: FakeFileProvider())

        with pytest.raises(ValidationError, match="2000MB"):
            await runner.run(clip)
        assert server.registered == []

    @pytest.mark.asyncio
    async def test_stream_without_credential(self, clip: Path) -> None:
        server = DirectServer([ProgressEvent.status(IngestionPhase.VALIDATING)])
        runner = DirectUploadRunner(_api(server), provider_factory=lambda c: FakeFileProvider())

        with pytest.raises(ProviderProtocolError):
            await runner.run(clip)

    @pytest.mark.asyncio
    async def test_file_outgrew_credential(self, clip: Path) -> None:
        events = [
            ProgressEvent.success(
                job_id="job-1", file_name="clip.mp4", mime_type="video/mp4", size=64,
                credential=_credential(max_bytes=10),
            )
        ]
        provider = FakeFileProvider()
        runner = DirectUploadRunner(_api(DirectServer(events)), provider_factory=lambda c: provider)

        with pytest.raises(ValidationError, match="too large"):
            await runner.run(clip)
        assert provider.started == []

    @pytest.mark.asyncio
    async def test_processing_failure_skips_registration(self, clip: Path) -> None:
        server = DirectServer()
        provider = FakeFileProvider([ProviderFileState.FAILED])
        runner = DirectUploadRunner(_api(server), provider_factory=lambda c: provider)

        with pytest.raises(ProcessingFailed):
            await runner.run(clip)
        assert server.registered == []
