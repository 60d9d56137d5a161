"""Resumable upload client: the init -> transfer+finalize handshake.

Drives an :class:`~mediaingest.models.ingestion.IngestionJob` from
UNSTARTED to FINALIZED against an :class:`IFileAPIProvider`:

    UNSTARTED --start_upload--> INITIALIZED
              --upload_and_finalize--> TRANSFERRED --> FINALIZED

Transfer and finalize are one request on the wire; the job still passes
through TRANSFERRED (provider name known) before FINALIZED (URI known) so
the state machine stays strictly monotonic.

There is no byte-level resume: the whole payload is sent at offset 0, and
any failure means the caller restarts the job from the beginning.
"""

from __future__ import annotations

import structlog

from mediaingest.interfaces.byte_source import ProgressCallback
from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.models.events import IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import IngestionJob, JobState
from mediaingest.utils.errors import PipelineError, ValidationError
from mediaingest.utils.formatting import format_file_size

logger = structlog.get_logger(logger_name=__name__)


class ResumableUploadClient:
    """Runs the two-request resumable handshake for one job at a time."""

    def __init__(self, provider: IFileAPIProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> IFileAPIProvider:
        return self._provider

    async def upload(
        self,
        job: IngestionJob,
        data: bytes,
        report: ProgressCallback | None = None,
    ) -> IngestionJob:
        """Upload *data* for *job* and return the job in state FINALIZED.

        Raises
        ------
        ValidationError
            If *data* is empty.
        PipelineError
            If *job* is not UNSTARTED or its declared length disagrees
            with *data*.
        TransferError, ProviderProtocolError
            Propagated from the provider; the job never reaches FINALIZED.
        """
        if job.state is not JobState.UNSTARTED:
            raise PipelineError(message=f"Job {job.job_id} already started ({job.state.value})")
        if not data:
            raise ValidationError(message="File is empty")
        if job.raw_byte_length and job.raw_byte_length != len(data):
            raise PipelineError(
                message=(
                    f"Job {job.job_id} declared {job.raw_byte_length} bytes "
                    f"but {len(data)} were supplied"
                )
            )

        await _emit(report, ProgressEvent.status(IngestionPhase.INITIALIZING))
        await _emit(report, ProgressEvent.progress("Initializing upload..."))
        upload_url = await self._provider.start_upload(
            total_bytes=len(data),
            mime_type=job.mime_type,
            display_name=job.display_name,
        )
        job = job.advance(JobState.INITIALIZED, raw_byte_length=len(data))
        logger.info("upload_initialized", job_id=job.job_id, size=len(data))

        await _emit(report, ProgressEvent.status(IngestionPhase.TRANSFERRING))
        await _emit(report, ProgressEvent.progress(f"Uploading {format_file_size(len(data))}..."))
        handle = await self._provider.upload_and_finalize(upload_url, data)

        job = job.advance(JobState.TRANSFERRED, provider_file_name=handle.name)
        job = job.advance(JobState.FINALIZED, provider_uri=handle.uri)
        logger.info(
            "upload_finalized",
            job_id=job.job_id,
            provider_file_name=handle.name,
        )
        return job


async def _emit(report: ProgressCallback | None, event: ProgressEvent) -> None:
    if report is not None:
        await report(event)
