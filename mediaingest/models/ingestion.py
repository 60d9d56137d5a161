"""Ingestion job, provider handle, and persisted record models.

Defines Pydantic v2 models for the lifecycle of a single ingestion job.
All models use frozen config to enforce immutability; state transitions
produce new IngestionJob instances via :meth:`IngestionJob.advance`, which
wraps ``model_copy(update={...})`` and rejects backward transitions.

Lifecycle of one job:

    UNSTARTED → INITIALIZED → TRANSFERRED → FINALIZED → (POLLING →)* READY
                                                                    | FAILED
                                                                    | TIMEOUT

A job is owned by exactly one coroutine (the pipeline task serving one
request) and is never shared between requests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from mediaingest.utils.errors import PipelineError


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SourceMode(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Where the job's bytes come from."""

    UPLOAD = "upload"   # bytes posted to this server (thin-server upload)
    URL = "url"         # remote URL fetched server-side
    DIRECT = "direct"   # browser uploads straight to the provider


class FileCategory(str, Enum):  # noqa: UP042
    """Coarse media category used for size ceilings and display."""

    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    PDF = "pdf"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    TEXT = "text"
    UNKNOWN = "unknown"


class JobState(str, Enum):  # noqa: UP042
    """Monotonic job states.  See the module docstring for the graph."""

    UNSTARTED = "UNSTARTED"
    INITIALIZED = "INITIALIZED"
    TRANSFERRED = "TRANSFERRED"
    FINALIZED = "FINALIZED"
    POLLING = "POLLING"
    READY = "READY"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    def can_transition_to(self, target: JobState) -> bool:
        """Return ``True`` if ``self → target`` is a legal forward transition."""
        return target in _ALLOWED_TRANSITIONS[self]


_TERMINAL_STATES = frozenset({JobState.READY, JobState.FAILED, JobState.TIMEOUT})

_ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.UNSTARTED: frozenset({JobState.INITIALIZED}),
    JobState.INITIALIZED: frozenset({JobState.TRANSFERRED}),
    JobState.TRANSFERRED: frozenset({JobState.FINALIZED}),
    JobState.FINALIZED: frozenset({JobState.POLLING}),
    # POLLING → POLLING is the only self-loop (one per poll attempt).
    JobState.POLLING: frozenset(
        {JobState.POLLING, JobState.READY, JobState.FAILED, JobState.TIMEOUT}
    ),
    JobState.READY: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMEOUT: frozenset(),
}


class ProviderFileState(str, Enum):  # noqa: UP042
    """Readiness states reported by the provider's status endpoint."""

    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"   # the ready sentinel
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# ProviderFileHandle - what the provider hands back after finalize.
# ---------------------------------------------------------------------------
class ProviderFileHandle(BaseModel):
    """Opaque identifier + URI assigned by the processing provider.

    ``name`` is the provider's resource name (e.g. ``files/abc123``) used for
    status polling; ``uri`` is what downstream features (chat, search,
    analysis) reference once the record is persisted.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    uri: str = Field(min_length=1)
    state: ProviderFileState | None = None
    # Stored size as reported by the provider; None when the response omits it.
    size_bytes: int | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# IngestionJob - the ephemeral per-request state.
# ---------------------------------------------------------------------------
class IngestionJob(BaseModel):
    """One ingestion job, from validation to a terminal state.

    Immutable: use :meth:`advance` for state changes and ``model_copy`` for
    plain field updates that do not touch ``state``.
    """

    model_config = ConfigDict(frozen=True)

    # Locally generated id, also the primary key of the persisted record.
    job_id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str = Field(min_length=1)
    source_mode: SourceMode
    raw_byte_length: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    display_name: str = "untitled"
    category: FileCategory = FileCategory.UNKNOWN
    source_url: str | None = None
    # Set after the transfer+finalize request returns.
    provider_file_name: str | None = None
    provider_uri: str | None = None
    state: JobState = JobState.UNSTARTED
    attempt_count: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=_utcnow)

    def advance(self, target: JobState, **updates: object) -> IngestionJob:
        """Return a copy in state *target*, rejecting illegal transitions.

        Raises
        ------
        PipelineError
            If ``self.state → target`` is not a forward edge of the state
            machine (including any transition out of a terminal state).
        """
        if not self.state.can_transition_to(target):
            raise PipelineError(
                message=f"Illegal job transition {self.state.value} -> {target.value}"
            )
        return self.model_copy(update={"state": target, **updates})

    @property
    def handle(self) -> ProviderFileHandle | None:
        """The provider handle, available once the job is FINALIZED."""
        if self.provider_file_name and self.provider_uri:
            return ProviderFileHandle(name=self.provider_file_name, uri=self.provider_uri)
        return None


# ---------------------------------------------------------------------------
# PersistedFileRecord - the only durable output of a job.
# ---------------------------------------------------------------------------
class PersistedFileRecord(BaseModel):
    """Durable metadata for a file that reached READY.

    Keyed by the job's locally generated id, which makes a retried write
    for the same job a no-op.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    title: str
    file_name: str
    mime_type: str
    category: FileCategory
    size: int = Field(ge=0)
    source_mode: SourceMode
    source_url: str | None = None
    provider_file_name: str
    provider_uri: str
    status: str = "ready"
    started_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_job(cls, job: IngestionJob) -> PersistedFileRecord:
        """Build the record for a READY job.

        Raises
        ------
        PipelineError
            If the job has not reached READY or lacks a provider handle.
        """
        if job.state is not JobState.READY or job.handle is None:
            raise PipelineError(
                message=f"Cannot persist job {job.job_id} in state {job.state.value}"
            )
        return cls(
            id=job.job_id,
            tenant_id=job.tenant_id,
            title=job.display_name,
            file_name=job.display_name,
            mime_type=job.mime_type,
            category=job.category,
            size=job.raw_byte_length,
            source_mode=job.source_mode,
            source_url=job.source_url,
            provider_file_name=job.provider_file_name or "",
            provider_uri=job.provider_uri or "",
            started_at=job.started_at,
        )


# ---------------------------------------------------------------------------
# UploadCredential - the grant handed to a browser in direct mode.
# ---------------------------------------------------------------------------
class UploadCredential(BaseModel):
    """Short-lived grant that lets a browser run the handshake itself.

    ``token`` is presented back to ``POST /api/v1/files`` when the browser
    registers the finished file; ``job_id`` becomes the record key.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    job_id: str
    tenant_id: str
    api_key: str
    provider_base_url: str
    max_bytes: int
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) >= self.expires_at
