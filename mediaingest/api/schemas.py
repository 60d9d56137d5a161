"""Pydantic request/response schemas for the mediaingest API.

The three ``/ingest/*`` endpoints answer with an event stream rather than a
JSON body, so only their request bodies are modelled here.  Everything else
(file registration, listing, provider status, health) returns one of the
response models below.

Convention: request schemas end with "Request", response schemas end with
"Response".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from mediaingest.models.ingestion import FileCategory, PersistedFileRecord, SourceMode


class UrlImportRequest(BaseModel):
    """Import a file the server downloads from a remote URL."""

    url: str = Field(..., min_length=1, max_length=4096)
    title: str | None = Field(default=None, max_length=500)


class DirectUploadRequest(BaseModel):
    """Declared facts about a file the browser will upload itself."""

    file_name: str = Field(..., min_length=1, max_length=500)
    mime_type: str | None = None
    size: int = Field(..., ge=0, description="File size in bytes")


class RegisterFileRequest(BaseModel):
    """Register a direct-mode upload once the provider reports it ACTIVE."""

    token: str = Field(..., min_length=1)
    provider_file_name: str = Field(..., min_length=1, description="e.g. files/abc123")


class FileRecordResponse(BaseModel):
    """A persisted file record."""

    id: str
    title: str
    file_name: str
    mime_type: str
    category: FileCategory
    size: int
    source_mode: SourceMode
    source_url: str | None = None
    provider_file_name: str
    provider_uri: str
    status: str
    started_at: datetime
    created_at: datetime

    @classmethod
    def from_record(cls, record: PersistedFileRecord) -> FileRecordResponse:
        return cls.model_validate(record.model_dump(exclude={"tenant_id"}))


class FileListResponse(BaseModel):
    """A tenant's persisted files, newest first."""

    files: list[FileRecordResponse]
    total: int


class ProviderFileStatusResponse(BaseModel):
    """One-shot processing state of a provider file."""

    name: str
    uri: str
    state: str | None = None
    ready: bool = False


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
