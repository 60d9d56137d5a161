"""Integration tests for IngestionPipeline with fake provider and store.

Covers the terminal-event contract (exactly one success or error closes
every stream), persistence only on READY, direct-mode credential issue and
registration, and cancellation when the consumer goes away.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mediaingest.models.events import EventKind, ProgressEvent
from mediaingest.models.ingestion import IngestionJob, ProviderFileState, SourceMode
from mediaingest.pipeline.byte_sources import (
    BrowserDirectSource,
    RemoteFetchSource,
    ServerBufferSource,
)
from mediaingest.pipeline.event_stream import EventStreamDecoder, ProgressEventEmitter, encode_event
from mediaingest.pipeline.ingestion_pipeline import UNEXPECTED_ERROR_MESSAGE, IngestionPipeline
from mediaingest.services.credential_service import UploadCredentialService
from mediaingest.services.readiness_poller import ReadinessPoller
from mediaingest.services.remote_fetcher import FetchedFile, RemoteFileFetcher
from mediaingest.services.resumable_upload import ResumableUploadClient
from mediaingest.services.url_policy import UrlPolicy
from mediaingest.utils.errors import ProcessingFailed, ValidationError
from mediaingest.utils.formatting import MEGABYTE
from tests.conftest import (
    PROVIDER_FILE_NAME,
    BlockingFileProvider,
    FakeFileProvider,
    InMemoryMetadataStore,
    SleepRecorder,
)

UPLOAD_MAX = int(4.5 * MEGABYTE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pipeline(
    provider: FakeFileProvider,
    store: InMemoryMetadataStore,
    max_attempts: int = 60,
) -> IngestionPipeline:
    return IngestionPipeline(
        upload_client=ResumableUploadClient(provider),
        poller=ReadinessPoller(provider, max_attempts=max_attempts, sleep=SleepRecorder()),
        store=store,
        credentials=UploadCredentialService(api_key="test-key", provider_base_url="https://p.example"),
    )


def _job(mode: SourceMode = SourceMode.UPLOAD) -> IngestionJob:
    return IngestionJob(tenant_id="tenant-a", source_mode=mode)


def _upload_source(data: bytes = b"x" * 2048) -> ServerBufferSource:
    return ServerBufferSource(data, "video/mp4", "clip.mp4", UPLOAD_MAX)


async def _run(pipeline: IngestionPipeline, job: IngestionJob, source) -> tuple[object, list[ProgressEvent]]:
    emitter = ProgressEventEmitter(job_id=job.job_id)
    record = await pipeline.run(job, source, emitter)
    events = [e async for e in emitter.events()]
    return record, events


def _terminal(events: list[ProgressEvent]) -> list[ProgressEvent]:
    return [e for e in events if e.is_terminal]


# ======================================================================
# Upload mode
# ======================================================================


class TestUploadMode:
    @pytest.mark.asyncio
    async def test_success_persists_once(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.PROCESSING, ProviderFileState.ACTIVE])
        job = _job()

        record, events = await _run(_pipeline(provider, memory_store), job, _upload_source())

        assert record is not None
        assert record.id == job.job_id
        assert record.provider_file_name == PROVIDER_FILE_NAME
        assert record.size == 2048
        assert memory_store.save_calls == 1

        terminal = _terminal(events)
        assert len(terminal) == 1
        assert terminal[0] is events[-1]
        assert terminal[0].kind is EventKind.SUCCESS
        assert terminal[0].result["file_id"] == job.job_id
        assert terminal[0].result["metadata"]["provider_uri"] == record.provider_uri

    @pytest.mark.asyncio
    async def test_phase_order(self, memory_store) -> None:
        _, events = await _run(_pipeline(FakeFileProvider(), memory_store), _job(), _upload_source())
        statuses = [e.message for e in events if e.kind is EventKind.STATUS]
        assert statuses == [
            "VALIDATING",
            "INITIALIZING",
            "TRANSFERRING",
            "PROCESSING",
            "SAVING",
            "READY",
        ]

    @pytest.mark.asyncio
    async def test_processing_failed_is_not_persisted(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.PROCESSING, ProviderFileState.FAILED])

        record, events = await _run(_pipeline(provider, memory_store), _job(), _upload_source())

        assert record is None
        assert memory_store.save_calls == 0
        terminal = _terminal(events)
        assert [e.kind for e in terminal] == [EventKind.ERROR]
        assert terminal[0].message == ProcessingFailed.default_user_message

    @pytest.mark.asyncio
    async def test_timeout_is_not_persisted(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.PROCESSING])

        record, events = await _run(
            _pipeline(provider, memory_store, max_attempts=4), _job(), _upload_source()
        )

        assert record is None
        assert memory_store.save_calls == 0
        assert provider.status_calls == 4
        assert "may still complete" in events[-1].message

    @pytest.mark.asyncio
    async def test_timeout_names_provider_file_for_later_check(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.PROCESSING])

        _, events = await _run(
            _pipeline(provider, memory_store, max_attempts=4), _job(), _upload_source()
        )

        wire = b"".join(encode_event(e) for e in events).decode()
        assert PROVIDER_FILE_NAME in wire
        assert events[-1].kind is EventKind.ERROR
        assert events[-1].message.endswith(f"Provider file: {PROVIDER_FILE_NAME}")

    @pytest.mark.asyncio
    async def test_validation_error_makes_no_network_call(self, memory_store) -> None:
        provider = FakeFileProvider()
        source = ServerBufferSource(b"x" * 10, "video/mp4", "clip.mp4", UPLOAD_MAX, total_size=10 * MEGABYTE)

        _, events = await _run(_pipeline(provider, memory_store), _job(), source)

        assert provider.started == []
        assert [e.to_payload() for e in events] == [
            {"status": "VALIDATING"},
            {
                "error": (
                    "File too large (10MB). Maximum size for server upload is 4.5MB. "
                    "Use direct upload for larger files."
                )
            },
        ]

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_one_generic_error(self, memory_store) -> None:
        provider = FakeFileProvider()
        provider.upload_and_finalize = AsyncMock(side_effect=RuntimeError("socket exploded"))

        record, events = await _run(_pipeline(provider, memory_store), _job(), _upload_source())

        assert record is None
        terminal = _terminal(events)
        assert len(terminal) == 1
        assert terminal[0].message == UNEXPECTED_ERROR_MESSAGE
        assert "socket exploded" not in terminal[0].message

    @pytest.mark.asyncio
    async def test_store_failure_after_ready_is_an_error(self) -> None:
        store = InMemoryMetadataStore()
        store.save_file = AsyncMock(side_effect=RuntimeError("disk full"))

        record, events = await _run(_pipeline(FakeFileProvider(), store), _job(), _upload_source())

        assert record is None
        assert [e.kind for e in _terminal(events)] == [EventKind.ERROR]


# ======================================================================
# URL mode
# ======================================================================


class TestUrlMode:
    @pytest.mark.asyncio
    async def test_url_import_records_source(self, memory_store) -> None:
        fetcher = MagicMock(spec=RemoteFileFetcher)
        fetcher.max_bytes = 100 * MEGABYTE
        fetcher.fetch = AsyncMock(
            return_value=FetchedFile(
                data=b"y" * 512, content_type="video/mp4", final_url="https://cdn.example.com/clip.mp4"
            )
        )
        source = RemoteFetchSource("https://cdn.example.com/clip.mp4", UrlPolicy(), fetcher)

        record, events = await _run(
            _pipeline(FakeFileProvider(), memory_store), _job(SourceMode.URL), source
        )

        assert record is not None
        assert record.source_url == "https://cdn.example.com/clip.mp4"
        assert record.source_mode is SourceMode.URL
        assert record.size == 512
        assert events[-1].kind is EventKind.SUCCESS

    @pytest.mark.asyncio
    async def test_rejected_url_never_fetches(self, memory_store) -> None:
        fetcher = MagicMock(spec=RemoteFileFetcher)
        fetcher.max_bytes = 100 * MEGABYTE
        fetcher.fetch = AsyncMock()
        source = RemoteFetchSource("https://example.com/video-page", UrlPolicy(), fetcher)

        _, events = await _run(_pipeline(FakeFileProvider(), memory_store), _job(SourceMode.URL), source)

        fetcher.fetch.assert_not_awaited()
        assert events[-1].kind is EventKind.ERROR
        assert "direct media file" in events[-1].message


# ======================================================================
# Direct mode
# ======================================================================


class TestDirectMode:
    @pytest.mark.asyncio
    async def test_issues_credential_without_upload(self, memory_store) -> None:
        provider = FakeFileProvider()
        job = _job(SourceMode.DIRECT)
        source = BrowserDirectSource("lecture.mp4", "video/mp4", 500 * MEGABYTE)

        record, events = await _run(_pipeline(provider, memory_store), job, source)

        assert record is None
        assert provider.started == []
        assert memory_store.save_calls == 0
        assert [e.message for e in events if e.kind is EventKind.STATUS] == [
            "VALIDATING",
            "CREDENTIAL_ISSUED",
        ]
        success = events[-1]
        assert success.kind is EventKind.SUCCESS
        assert success.result["job_id"] == job.job_id
        assert success.result["credential"]["max_bytes"] == 2000 * MEGABYTE
        assert success.result["credential"]["tenant_id"] == "tenant-a"

    @pytest.mark.asyncio
    async def test_register_is_idempotent(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider([ProviderFileState.ACTIVE]), memory_store)
        job = _job(SourceMode.DIRECT)
        _, events = await _run(pipeline, job, BrowserDirectSource("lecture.mp4", "video/mp4", 4096))
        token = events[-1].result["credential"]["token"]

        first = await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)
        second = await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)

        assert first.id == job.job_id
        assert second == first
        assert len(memory_store.records) == 1
        assert first.size == 4096
        assert first.mime_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_register_rejects_second_file_for_same_token(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider([ProviderFileState.ACTIVE]), memory_store)
        _, events = await _run(
            pipeline, _job(SourceMode.DIRECT), BrowserDirectSource("lecture.mp4", "video/mp4", 4096)
        )
        token = events[-1].result["credential"]["token"]
        await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)

        with pytest.raises(ValidationError, match="different file"):
            await pipeline.register_direct_upload(token, "tenant-a", "files/someone-else")

        assert len(memory_store.records) == 1
        assert next(iter(memory_store.records.values())).provider_file_name == PROVIDER_FILE_NAME

    @pytest.mark.asyncio
    async def test_register_rejects_file_larger_than_credential(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.ACTIVE], size_bytes=2001 * MEGABYTE)
        pipeline = _pipeline(provider, memory_store)
        _, events = await _run(
            pipeline, _job(SourceMode.DIRECT), BrowserDirectSource("lecture.mp4", "video/mp4", 10)
        )
        token = events[-1].result["credential"]["token"]

        with pytest.raises(ValidationError, match="2000MB"):
            await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)
        assert memory_store.save_calls == 0

    @pytest.mark.asyncio
    async def test_register_records_provider_reported_size(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.ACTIVE], size_bytes=7000)
        pipeline = _pipeline(provider, memory_store)
        _, events = await _run(
            pipeline, _job(SourceMode.DIRECT), BrowserDirectSource("lecture.mp4", "video/mp4", 10)
        )
        token = events[-1].result["credential"]["token"]

        record = await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)

        assert record.size == 7000

    @pytest.mark.asyncio
    async def test_register_rejects_unfinished_file(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider([ProviderFileState.PROCESSING]), memory_store)
        _, events = await _run(
            pipeline, _job(SourceMode.DIRECT), BrowserDirectSource("a.mp4", "video/mp4", 10)
        )
        token = events[-1].result["credential"]["token"]

        with pytest.raises(ValidationError, match="still processing"):
            await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)
        assert memory_store.save_calls == 0

    @pytest.mark.asyncio
    async def test_register_rejects_failed_file(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider([ProviderFileState.FAILED]), memory_store)
        _, events = await _run(
            pipeline, _job(SourceMode.DIRECT), BrowserDirectSource("a.mp4", "video/mp4", 10)
        )
        token = events[-1].result["credential"]["token"]

        with pytest.raises(ProcessingFailed):
            await pipeline.register_direct_upload(token, "tenant-a", PROVIDER_FILE_NAME)

    @pytest.mark.asyncio
    async def test_register_with_foreign_token(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider(), memory_store)
        with pytest.raises(ValidationError):
            await pipeline.register_direct_upload("forged", "tenant-a", PROVIDER_FILE_NAME)


# ======================================================================
# Streaming and cancellation
# ======================================================================


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_yields_decodable_frames(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider(), memory_store)
        decoder = EventStreamDecoder()
        events: list[ProgressEvent] = []

        async for frame in pipeline.stream(_job(), _upload_source()):
            events.extend(decoder.feed(frame))

        assert events[0].to_payload() == {"status": "VALIDATING"}
        assert len(_terminal(events)) == 1
        assert events[-1].kind is EventKind.SUCCESS

    @pytest.mark.asyncio
    async def test_consumer_disconnect_cancels_job(self, memory_store) -> None:
        provider = BlockingFileProvider()
        pipeline = _pipeline(provider, memory_store)
        frames = pipeline.stream(_job(), _upload_source())

        await frames.__anext__()
        await asyncio.wait_for(provider.polling.wait(), timeout=5)
        await frames.aclose()

        # Closing the stream waits for the job task to unwind.
        assert provider.cancelled
        assert memory_store.save_calls == 0

    @pytest.mark.asyncio
    async def test_close_after_terminal_event_leaves_no_pending_task(self, memory_store) -> None:
        pipeline = _pipeline(FakeFileProvider(), memory_store)
        frames = pipeline.stream(_job(), _upload_source())
        before = asyncio.all_tasks()

        async for _ in frames:
            pass
        await frames.aclose()

        assert asyncio.all_tasks() - before == set()
        assert memory_store.save_calls == 1

    @pytest.mark.asyncio
    async def test_disconnect_check_ends_polling_silently(self, memory_store) -> None:
        provider = FakeFileProvider([ProviderFileState.PROCESSING])
        pipeline = _pipeline(provider, memory_store)

        async def disconnected() -> bool:
            return True

        emitter = ProgressEventEmitter()
        record = await pipeline.run(_job(), _upload_source(), emitter, is_disconnected=disconnected)
        events = [e async for e in emitter.events()]

        assert record is None
        assert provider.status_calls == 1
        assert _terminal(events) == []
        assert memory_store.save_calls == 0
