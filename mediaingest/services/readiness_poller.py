"""Processing-readiness poller.

After finalize, the provider processes the file asynchronously.  The
poller asks for the file's state once per attempt:

* ``ACTIVE``      -> the job advances to READY and is returned
* ``FAILED``      -> :class:`ProcessingFailed`, no further attempt is made
* ``PROCESSING``  -> sleep ``interval_seconds`` and try again

After ``max_attempts`` attempts still in PROCESSING the poller raises
:class:`ProcessingTimeout` without sleeping again.  With the defaults
(3 seconds, 60 attempts) that is roughly three minutes of waiting.  A
timeout is not a failure: the remote job may still complete later.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from mediaingest.interfaces.byte_source import ProgressCallback
from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.models.events import IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import IngestionJob, JobState, ProviderFileState
from mediaingest.utils.errors import (
    IngestionCancelled,
    PipelineError,
    ProcessingFailed,
    ProcessingTimeout,
)

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_INTERVAL_SECONDS = 3.0
DEFAULT_MAX_ATTEMPTS = 60
DEFAULT_HEARTBEAT_EVERY = 3

SleepFunc = Callable[[float], Awaitable[None]]
CancelCheck = Callable[[], Awaitable[bool]]


class ReadinessPoller:
    """Polls the provider until a file is ACTIVE, FAILED, or the budget runs out.

    Parameters
    ----------
    provider:
        The provider whose ``get_file`` reports processing state.
    interval_seconds:
        Delay between consecutive attempts.
    max_attempts:
        Total number of status requests before giving up.
    heartbeat_every:
        Emit a ``Processing... (Ns)`` progress line every this many attempts.
    sleep:
        Awaitable sleep, injectable so tests can run without waiting.
    """

    def __init__(
        self,
        provider: IFileAPIProvider,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        heartbeat_every: int = DEFAULT_HEARTBEAT_EVERY,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._provider = provider
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._heartbeat_every = max(heartbeat_every, 1)
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def interval_seconds(self) -> float:
        return self._interval

    async def wait_until_ready(
        self,
        job: IngestionJob,
        report: ProgressCallback | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> IngestionJob:
        """Poll for *job*'s provider file and return the job in state READY.

        Raises
        ------
        PipelineError
            If *job* has not been finalized.
        ProcessingFailed
            If the provider reports FAILED.
        ProcessingTimeout
            If every attempt saw PROCESSING.
        IngestionCancelled
            If *is_cancelled* reports that the caller went away.
        TransferError, ProviderProtocolError
            Propagated from the status call.
        """
        if job.state is not JobState.FINALIZED or job.handle is None:
            raise PipelineError(
                message=f"Job {job.job_id} cannot be polled before finalize ({job.state.value})"
            )
        name = job.provider_file_name or ""

        if report is not None:
            await report(ProgressEvent.status(IngestionPhase.PROCESSING))
            await report(ProgressEvent.progress("Processing file..."))

        for attempt in range(1, self._max_attempts + 1):
            job = job.advance(JobState.POLLING, attempt_count=attempt)
            handle = await self._provider.get_file(name)
            logger.debug("poll_attempt", job_id=job.job_id, attempt=attempt, state=handle.state)

            if handle.state is ProviderFileState.ACTIVE:
                ready = job.advance(JobState.READY, provider_uri=handle.uri)
                logger.info("file_ready", job_id=job.job_id, attempts=attempt)
                return ready

            if handle.state is ProviderFileState.FAILED:
                job = job.advance(JobState.FAILED)
                logger.warning(
                    "file_processing_failed",
                    job_id=job.job_id,
                    state=job.state.value,
                    attempts=attempt,
                )
                raise ProcessingFailed(
                    message=f"Provider reported FAILED for {name} after {attempt} attempt(s)",
                    provider_name=self._provider.get_provider_name(),
                )

            if report is not None and attempt % self._heartbeat_every == 0:
                elapsed = (attempt - 1) * self._interval
                await report(ProgressEvent.progress(f"Processing... ({elapsed:g}s)"))

            if attempt == self._max_attempts:
                break

            if is_cancelled is not None and await is_cancelled():
                logger.info("poll_cancelled", job_id=job.job_id, attempts=attempt)
                raise IngestionCancelled(message=f"Caller disconnected while polling {name}")

            await self._sleep(self._interval)

        job = job.advance(JobState.TIMEOUT)
        logger.warning(
            "file_processing_timeout",
            job_id=job.job_id,
            state=job.state.value,
            attempts=self._max_attempts,
        )
        raise ProcessingTimeout(
            message=f"{name} still PROCESSING after {self._max_attempts} attempts",
            provider_name=self._provider.get_provider_name(),
            # The name is what GET /api/v1/provider-files/{name} takes.
            user_message=f"{ProcessingTimeout.default_user_message} Provider file: {name}",
            attempts=self._max_attempts,
        )
