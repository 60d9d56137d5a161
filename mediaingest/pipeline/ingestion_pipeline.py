"""Ingestion pipeline: one parameterised flow for all three input modes.

ARCHITECTURE NOTE (for junior developers):
    The pipeline coordinates the collaborators in a fixed sequence and
    streams a status line for every phase through the job's emitter:

        VALIDATING -> (FETCHING -> DOWNLOADING) -> INITIALIZING
                   -> TRANSFERRING -> PROCESSING -> SAVING -> READY

    Upload and URL modes run the whole sequence on this server.  Direct
    mode stops after validation: the server issues an upload credential
    and the browser runs INITIALIZING..PROCESSING itself, then registers
    the finished file through :meth:`IngestionPipeline.register_direct_upload`.

    Errors have exactly one exit.  Whatever goes wrong inside :meth:`run`
    (a validation failure, a provider fault, a bug) is caught in one place
    and turned into a single terminal ``{error}`` event.  The one
    exception is cancellation: when the caller disconnects nothing more is
    emitted and nothing is persisted.

    The job itself is a frozen model.  Every step returns a new
    IngestionJob, so the state machine in ``models/ingestion.py`` rejects
    any out-of-order step.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog

from mediaingest.interfaces.byte_source import ByteSource
from mediaingest.interfaces.metadata_store import IMetadataStore
from mediaingest.models.events import IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import (
    IngestionJob,
    JobState,
    PersistedFileRecord,
    ProviderFileState,
)
from mediaingest.pipeline.event_stream import ProgressEventEmitter
from mediaingest.services.credential_service import UploadCredentialService
from mediaingest.services.readiness_poller import ReadinessPoller
from mediaingest.services.resumable_upload import ResumableUploadClient
from mediaingest.utils.errors import (
    ConfigurationError,
    IngestionCancelled,
    MediaIngestError,
    ProcessingFailed,
    ValidationError,
)
from mediaingest.utils.formatting import format_megabytes
from mediaingest.utils.logging import bind_job_context

logger = structlog.get_logger(logger_name=__name__)

UNEXPECTED_ERROR_MESSAGE = "Unexpected error while processing the file. Please try again."

DisconnectCheck = Callable[[], Awaitable[bool]]


class IngestionPipeline:
    """Runs ingestion jobs and registers direct-mode results.

    All collaborators are injected at construction time.  The credential
    service is only needed for direct mode.
    """

    def __init__(
        self,
        upload_client: ResumableUploadClient,
        poller: ReadinessPoller,
        store: IMetadataStore,
        credentials: UploadCredentialService | None = None,
    ) -> None:
        self._upload_client = upload_client
        self._poller = poller
        self._store = store
        self._credentials = credentials

    # ------------------------------------------------------------------
    # Streaming entry point
    # ------------------------------------------------------------------

    async def stream(
        self,
        job: IngestionJob,
        source: ByteSource,
        is_disconnected: DisconnectCheck | None = None,
    ) -> AsyncIterator[bytes]:
        """Run *job* as a background task and yield its encoded events.

        If the consumer stops iterating (the HTTP client went away), the
        job task is cancelled at its next suspension point and awaited, so
        the job has stopped by the time the stream is closed.
        """
        emitter = ProgressEventEmitter(job_id=job.job_id)
        task = asyncio.create_task(self.run(job, source, emitter, is_disconnected))
        try:
            async for frame in emitter.frames():
                yield frame
        finally:
            if not task.done():
                logger.info("ingestion_stream_closed_early", job_id=job.job_id)
                task.cancel()
            # wait() does not re-raise the task's cancellation.
            await asyncio.wait({task})

    async def run(
        self,
        job: IngestionJob,
        source: ByteSource,
        emitter: ProgressEventEmitter,
        is_disconnected: DisconnectCheck | None = None,
    ) -> PersistedFileRecord | None:
        """Run *job* to a terminal event on *emitter*.

        Returns the persisted record for upload and URL modes, or ``None``
        for direct mode and for any failed or cancelled job.  Never raises
        except for ``asyncio.CancelledError``.
        """
        bind_job_context(job.job_id, job.tenant_id, job.source_mode.value)
        logger.info("ingestion_started", display_name=source.display_name)
        try:
            record = await self._execute(job, source, emitter, is_disconnected)
        except IngestionCancelled:
            logger.info("ingestion_cancelled")
            return None
        except MediaIngestError as exc:
            logger.warning(
                "ingestion_failed",
                error_type=type(exc).__name__,
                provider=exc.provider_name,
                error=exc.message,
            )
            await self._emit_error(emitter, exc.user_message)
            return None
        except Exception as exc:
            logger.exception("ingestion_unexpected_error", error=str(exc))
            await self._emit_error(emitter, UNEXPECTED_ERROR_MESSAGE)
            return None
        finally:
            emitter.close()

        logger.info("ingestion_finished", persisted=record is not None)
        return record

    # ------------------------------------------------------------------
    # Direct-mode registration
    # ------------------------------------------------------------------

    async def register_direct_upload(
        self,
        token: str,
        tenant_id: str,
        provider_file_name: str,
    ) -> PersistedFileRecord:
        """Persist the file a browser uploaded with the credential *token*.

        A token registers one provider file.  Repeating the call for the
        same file returns the stored record; naming a different file is
        rejected.

        Raises
        ------
        ValidationError
            If the token is invalid, already registered another file, the
            provider file is larger than the credential allows, or it is
            not ACTIVE yet.
        ProcessingFailed
            If the provider reports the file FAILED.
        ConfigurationError
            If direct mode is not configured.
        """
        credentials = self._require_credentials()
        issued = credentials.redeem(token, tenant_id)
        job = issued.job
        bind_job_context(job.job_id, job.tenant_id, job.source_mode.value)

        existing = await self._store.get_file(tenant_id, job.job_id)
        if existing is not None:
            _check_same_provider_file(existing, provider_file_name)
            logger.info("direct_upload_already_registered", provider_file_name=provider_file_name)
            return existing

        handle = await self._upload_client.provider.get_file(provider_file_name)
        if handle.state is ProviderFileState.FAILED:
            raise ProcessingFailed(
                message=f"Provider reported FAILED for {provider_file_name}",
                provider_name=self._upload_client.provider.get_provider_name(),
            )
        if handle.state is not ProviderFileState.ACTIVE:
            raise ValidationError(
                message=(
                    "The file is still processing. Register it again once processing "
                    "has finished."
                )
            )

        max_bytes = issued.credential.max_bytes
        if handle.size_bytes is not None and handle.size_bytes > max_bytes:
            raise ValidationError(
                message=(
                    f"Uploaded file is {format_megabytes(handle.size_bytes)}, more than the "
                    f"{format_megabytes(max_bytes)} this upload was authorised for."
                )
            )

        # The browser ran these steps; replay them so the record is built
        # from a READY job like every other mode.  The provider's size wins
        # over the declared one when it is known.
        job = (
            job.advance(
                JobState.INITIALIZED,
                raw_byte_length=handle.size_bytes or job.raw_byte_length,
            )
            .advance(JobState.TRANSFERRED, provider_file_name=handle.name)
            .advance(JobState.FINALIZED, provider_uri=handle.uri)
            .advance(JobState.POLLING, attempt_count=1)
            .advance(JobState.READY)
        )
        record = await self._store.save_file(PersistedFileRecord.from_job(job))
        # A concurrent registration may have stored a different file first.
        _check_same_provider_file(record, handle.name)
        logger.info("direct_upload_registered", provider_file_name=handle.name)
        return record

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _execute(
        self,
        job: IngestionJob,
        source: ByteSource,
        emitter: ProgressEventEmitter,
        is_disconnected: DisconnectCheck | None,
    ) -> PersistedFileRecord | None:
        await emitter.emit(ProgressEvent.status(IngestionPhase.VALIDATING))
        source.validate()
        job = job.model_copy(
            update={
                "display_name": source.display_name,
                "raw_byte_length": source.declared_size,
            }
        )

        if source.executes_remotely:
            await self._issue_credential(job, source, emitter)
            return None

        payload = await source.load(emitter)
        job = job.model_copy(
            update={
                "display_name": payload.display_name,
                "mime_type": payload.mime_type,
                "category": payload.category,
                "raw_byte_length": payload.size,
                "source_url": payload.source_url,
            }
        )

        job = await self._upload_client.upload(job, payload.data, emitter)
        job = await self._poller.wait_until_ready(job, emitter, is_disconnected)

        await emitter.emit(ProgressEvent.status(IngestionPhase.SAVING))
        await emitter.emit(ProgressEvent.progress("Saving file metadata..."))
        record = await self._store.save_file(PersistedFileRecord.from_job(job))

        await emitter.emit(ProgressEvent.status(IngestionPhase.READY))
        await emitter.emit(
            ProgressEvent.success(file_id=record.id, metadata=_record_payload(record))
        )
        return record

    async def _issue_credential(
        self,
        job: IngestionJob,
        source: ByteSource,
        emitter: ProgressEventEmitter,
    ) -> None:
        credentials = self._require_credentials()
        job = job.model_copy(
            update={
                "mime_type": source.declared_mime_type,
                "category": source.declared_category,
            }
        )
        credential = credentials.issue(job, max_bytes=source.max_bytes)

        await emitter.emit(ProgressEvent.status(IngestionPhase.CREDENTIAL_ISSUED))
        await emitter.emit(
            ProgressEvent.success(
                job_id=job.job_id,
                file_name=job.display_name,
                mime_type=job.mime_type,
                size=job.raw_byte_length,
                credential=credential.model_dump(mode="json"),
            )
        )

    def _require_credentials(self) -> UploadCredentialService:
        if self._credentials is None:
            raise ConfigurationError(message="Direct upload is not configured")
        return self._credentials

    @staticmethod
    async def _emit_error(emitter: ProgressEventEmitter, text: str) -> None:
        if emitter.is_finished:
            # A terminal event already went out; the stream contract allows only one.
            logger.error("error_after_terminal_event", error=text)
            return
        await emitter.emit(ProgressEvent.error(text))


def _record_payload(record: PersistedFileRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _check_same_provider_file(record: PersistedFileRecord, provider_file_name: str) -> None:
    if record.provider_file_name != provider_file_name:
        raise ValidationError(
            message=(
                "This upload credential was already used to register a different file. "
                "Request a new credential for each upload."
            )
        )
