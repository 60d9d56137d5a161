"""FastAPI API routes for mediaingest.

The three ingest endpoints answer with a ``text/event-stream`` body: the
response *is* the job's progress stream, ending with exactly one terminal
event.  The remaining endpoints are plain JSON.  Service dependencies are
resolved from ``app.state`` via FastAPI's ``Depends`` using the
``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/ingest/upload                 POST    multipart file -> event stream
# /api/v1/ingest/url                    POST    {url, title?}  -> event stream
# /api/v1/ingest/direct                 POST    file facts     -> stream ending in a credential
# /api/v1/files                         POST    register a direct-mode upload
# /api/v1/files                         GET     list the tenant's files
# /api/v1/files/{file_id}               GET     one file record
# /api/v1/provider-files/{name}         GET     one-shot provider state check
# /api/v1/health                        GET     health check + provider status
#
# Every request carries the tenant in the X-Tenant-ID header.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from mediaingest import __version__
from mediaingest.api.schemas import (
    DirectUploadRequest,
    ErrorResponse,
    FileListResponse,
    FileRecordResponse,
    HealthResponse,
    ProviderFileStatusResponse,
    RegisterFileRequest,
    UrlImportRequest,
)
from mediaingest.interfaces.byte_source import ByteSource
from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.interfaces.metadata_store import IMetadataStore
from mediaingest.models.ingestion import IngestionJob, ProviderFileState
from mediaingest.pipeline.byte_sources import (
    BrowserDirectSource,
    RemoteFetchSource,
    ServerBufferSource,
)
from mediaingest.pipeline.event_stream import SSE_HEADERS, SSE_MEDIA_TYPE
from mediaingest.pipeline.ingestion_pipeline import IngestionPipeline
from mediaingest.services.remote_fetcher import RemoteFileFetcher
from mediaingest.services.url_policy import UrlPolicy
from mediaingest.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

# Read multipart uploads in 64 KB increments so an oversize body is cut off
# one chunk past the ceiling instead of being buffered whole.
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def _get_url_policy(request: Request) -> UrlPolicy:
    return request.app.state.url_policy


def _get_remote_fetcher(request: Request) -> RemoteFileFetcher:
    return request.app.state.remote_fetcher


def _get_file_provider(request: Request) -> IFileAPIProvider:
    return request.app.state.file_provider


def _get_metadata_store(request: Request) -> IMetadataStore:
    return request.app.state.metadata_store


def _get_tenant_id(x_tenant_id: Annotated[str | None, Header()] = None) -> str:
    """Return the caller's tenant from the ``X-Tenant-ID`` header."""
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Tenant-ID header is required")
    return tenant_id


PipelineDep = Annotated[IngestionPipeline, Depends(_get_pipeline)]
UrlPolicyDep = Annotated[UrlPolicy, Depends(_get_url_policy)]
FetcherDep = Annotated[RemoteFileFetcher, Depends(_get_remote_fetcher)]
FileProviderDep = Annotated[IFileAPIProvider, Depends(_get_file_provider)]
MetadataStoreDep = Annotated[IMetadataStore, Depends(_get_metadata_store)]
TenantDep = Annotated[str, Depends(_get_tenant_id)]


def _event_stream(
    request: Request,
    pipeline: IngestionPipeline,
    tenant_id: str,
    source: ByteSource,
) -> StreamingResponse:
    job = IngestionJob(
        tenant_id=tenant_id,
        source_mode=source.mode,
        display_name=source.display_name,
    )
    _logger.info(
        "ingest_request_accepted",
        job_id=job.job_id,
        tenant_id=tenant_id,
        source_mode=source.mode.value,
    )
    return StreamingResponse(
        pipeline.stream(job, source, is_disconnected=request.is_disconnected),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Ingest endpoints (event streams)
# ---------------------------------------------------------------------------


@router.post(
    "/ingest/upload",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Upload a small file through the server",
)
async def ingest_upload(
    request: Request,
    file: UploadFile,
    pipeline: PipelineDep,
    tenant_id: TenantDep,
) -> StreamingResponse:
    """Stream the ingestion of a multipart-uploaded file (4.5MB ceiling)."""
    max_bytes: int = request.app.state.upload_max_bytes

    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        chunks.append(chunk)
        if total_size > max_bytes:
            break
    data = b"".join(chunks)
    del chunks

    source = ServerBufferSource(
        data=data,
        mime_type=file.content_type,
        file_name=file.filename or "upload",
        max_bytes=max_bytes,
        total_size=file.size,
    )
    return _event_stream(request, pipeline, tenant_id, source)


@router.post(
    "/ingest/url",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Import a file from a remote URL",
)
async def ingest_url(
    request: Request,
    body: UrlImportRequest,
    pipeline: PipelineDep,
    policy: UrlPolicyDep,
    fetcher: FetcherDep,
    tenant_id: TenantDep,
) -> StreamingResponse:
    """Stream the ingestion of a file the server downloads (100MB ceiling)."""
    source = RemoteFetchSource(url=body.url, policy=policy, fetcher=fetcher, title=body.title)
    return _event_stream(request, pipeline, tenant_id, source)


@router.post(
    "/ingest/direct",
    response_class=StreamingResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Obtain a credential for a direct browser-to-provider upload",
)
async def ingest_direct(
    request: Request,
    body: DirectUploadRequest,
    pipeline: PipelineDep,
    tenant_id: TenantDep,
) -> StreamingResponse:
    """Validate declared file facts and stream back an upload credential."""
    source = BrowserDirectSource(file_name=body.file_name, mime_type=body.mime_type, size=body.size)
    return _event_stream(request, pipeline, tenant_id, source)


# ---------------------------------------------------------------------------
# File records
# ---------------------------------------------------------------------------


@router.post(
    "/files",
    response_model=FileRecordResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Register a file uploaded in direct mode",
)
async def register_file(
    body: RegisterFileRequest,
    pipeline: PipelineDep,
    tenant_id: TenantDep,
) -> FileRecordResponse:
    """Persist a direct-mode upload once the provider reports it ACTIVE.

    Registering the same upload twice returns the same record.
    """
    record = await pipeline.register_direct_upload(
        token=body.token,
        tenant_id=tenant_id,
        provider_file_name=body.provider_file_name,
    )
    return FileRecordResponse.from_record(record)


@router.get(
    "/files",
    response_model=FileListResponse,
    summary="List the tenant's files, newest first",
)
async def list_files(
    store: MetadataStoreDep,
    tenant_id: TenantDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> FileListResponse:
    records = await store.list_files(tenant_id, limit=limit)
    files = [FileRecordResponse.from_record(r) for r in records]
    return FileListResponse(files=files, total=len(files))


@router.get(
    "/files/{file_id}",
    response_model=FileRecordResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch one file record",
)
async def get_file(
    file_id: str,
    store: MetadataStoreDep,
    tenant_id: TenantDep,
) -> FileRecordResponse:
    record = await store.get_file(tenant_id, file_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No file: {file_id}")
    return FileRecordResponse.from_record(record)


@router.get(
    "/provider-files/{name:path}",
    response_model=ProviderFileStatusResponse,
    responses={502: {"model": ErrorResponse}},
    summary="Check a provider file's processing state once",
)
async def get_provider_file(
    name: str,
    provider: FileProviderDep,
    tenant_id: TenantDep,
) -> ProviderFileStatusResponse:
    """Look up a provider file, e.g. after a job timed out while processing."""
    handle = await provider.get_file(name)
    return ProviderFileStatusResponse(
        name=handle.name,
        uri=handle.uri,
        state=handle.state.value if handle.state else None,
        ready=handle.state is ProviderFileState.ACTIVE,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request) -> HealthResponse:
    providers: dict[str, Any] = {}
    provider = getattr(request.app.state, "file_provider", None)
    if provider is not None:
        providers[provider.get_provider_name()] = provider.is_available()
    return HealthResponse(
        status="ok" if all(providers.values()) else "degraded",
        version=__version__,
        providers=providers,
    )

