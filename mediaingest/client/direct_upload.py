"""Direct-mode runner: the client side of a browser-to-provider upload.

In direct mode the server only validates the declared file facts and hands
out a short-lived credential.  The bytes go straight from the caller to the
provider, using the same handshake the server runs in the other modes:

    1. POST /api/v1/ingest/direct      -> stream ending in {success, credential}
    2. ResumableUploadClient.upload    -> provider init + transfer/finalize
    3. ReadinessPoller.wait_until_ready
    4. POST /api/v1/files              -> the persisted record

Large files therefore never pass through the server.
"""

from __future__ import annotations

import contextlib
import mimetypes
from collections.abc import Callable
from pathlib import Path

import httpx
import structlog

from mediaingest.client.api_client import IngestionAPIClient
from mediaingest.interfaces.byte_source import ProgressCallback
from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.models.events import EventKind, IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import IngestionJob, SourceMode, UploadCredential
from mediaingest.providers.file_api.gemini_provider import GeminiFileAPIProvider
from mediaingest.services.readiness_poller import ReadinessPoller
from mediaingest.services.resumable_upload import ResumableUploadClient
from mediaingest.utils.errors import ProviderProtocolError, ValidationError
from mediaingest.utils.formatting import format_megabytes

logger = structlog.get_logger(logger_name=__name__)

ProviderFactory = Callable[[UploadCredential], IFileAPIProvider]


class DirectUploadRunner:
    """Runs a complete direct-mode upload for one local file.

    Parameters
    ----------
    api:
        Client for the mediaingest server.
    provider_factory:
        Builds the provider adapter from the issued credential.  Defaults
        to a Gemini adapter sharing *http_client*.
    http_client:
        Client handed to the default provider adapter.
    poll_interval_seconds, poll_max_attempts:
        Readiness polling cadence; same defaults as the server.
    """

    def __init__(
        self,
        api: IngestionAPIClient,
        provider_factory: ProviderFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        poll_interval_seconds: float = 3.0,
        poll_max_attempts: int = 60,
    ) -> None:
        self._api = api
        self._http = http_client
        self._provider_factory = provider_factory or self._gemini_provider
        self._poll_interval = poll_interval_seconds
        self._poll_max_attempts = poll_max_attempts

    async def run(
        self,
        path: str | Path,
        mime_type: str | None = None,
        report: ProgressCallback | None = None,
    ):
        """Upload *path* directly to the provider and register it.

        Returns the registered ``FileRecordResponse``.

        Raises
        ------
        ValidationError
            If the server refuses the file or the file outgrew the credential.
        ProviderProtocolError
            If the credential stream ends without a credential.
        TransferError, ProcessingFailed, ProcessingTimeout
            Propagated from the handshake, polling or registration.
        """
        file_path = Path(path)
        data = file_path.read_bytes()
        mime_type = mime_type or mimetypes.guess_type(file_path.name)[0]

        credential, job = await self._obtain_credential(file_path.name, len(data), mime_type, report)
        if len(data) > credential.max_bytes:
            raise ValidationError(
                message=(
                    f"File too large ({format_megabytes(len(data))}). Maximum size for "
                    f"direct upload is {format_megabytes(credential.max_bytes)}."
                )
            )

        provider = self._provider_factory(credential)
        job = await ResumableUploadClient(provider).upload(job, data, report)
        poller = ReadinessPoller(
            provider,
            interval_seconds=self._poll_interval,
            max_attempts=self._poll_max_attempts,
        )
        job = await poller.wait_until_ready(job, report)

        if report is not None:
            await report(ProgressEvent.status(IngestionPhase.SAVING))
        record = await self._api.register_file(
            token=credential.token,
            provider_file_name=job.provider_file_name or "",
        )
        logger.info("direct_upload_complete", job_id=job.job_id, file_id=record.id)
        if report is not None:
            await report(ProgressEvent.status(IngestionPhase.READY))
        return record

    async def _obtain_credential(
        self,
        file_name: str,
        size: int,
        mime_type: str | None,
        report: ProgressCallback | None,
    ) -> tuple[UploadCredential, IngestionJob]:
        events = self._api.request_direct(file_name, size, mime_type)
        # Returning mid-stream must still release the HTTP response.
        async with contextlib.aclosing(events):
            async for event in events:
                if event.kind is EventKind.ERROR:
                    raise ValidationError(message=event.message or "Direct upload was refused")
                if event.kind is EventKind.SUCCESS:
                    return self._job_from_success(event)
                if report is not None:
                    await report(event)
        raise ProviderProtocolError(
            message="Direct upload stream ended without a credential",
            provider_name="mediaingest-api",
        )

    def _job_from_success(self, event: ProgressEvent) -> tuple[UploadCredential, IngestionJob]:
        raw = event.result.get("credential")
        if not isinstance(raw, dict):
            raise ProviderProtocolError(
                message="Direct upload success event carries no credential",
                provider_name="mediaingest-api",
            )
        credential = UploadCredential.model_validate(raw)
        job = IngestionJob(
            job_id=credential.job_id,
            tenant_id=credential.tenant_id,
            source_mode=SourceMode.DIRECT,
            display_name=event.result.get("file_name") or "upload",
            mime_type=event.result.get("mime_type") or "application/octet-stream",
            raw_byte_length=int(event.result.get("size") or 0),
        )
        return credential, job

    def _gemini_provider(self, credential: UploadCredential) -> IFileAPIProvider:
        return GeminiFileAPIProvider(
            api_key=credential.api_key,
            http_client=self._http,
            base_url=credential.provider_base_url,
        )
