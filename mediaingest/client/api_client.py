"""Async client for the mediaingest HTTP API.

The three ingest endpoints answer with an event stream; the client exposes
each as an async iterator of :class:`ProgressEvent`, decoded incrementally
as bytes arrive.  The JSON endpoints return the API's response schemas.

Usage::

    async with httpx.AsyncClient(base_url="http://localhost:8000") as http:
        api = IngestionAPIClient(http, tenant_id="acme")
        async for event in api.import_url("https://cdn.example.com/clip.mp4"):
            print(event.percent, event.to_payload())
"""

from __future__ import annotations

import mimetypes
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import httpx
import structlog

from mediaingest.api.schemas import FileListResponse, FileRecordResponse
from mediaingest.models.events import ProgressEvent
from mediaingest.pipeline.event_stream import SSE_MEDIA_TYPE, iter_events
from mediaingest.utils.errors import TransferError

logger = structlog.get_logger(logger_name=__name__)

_API_PREFIX = "/api/v1"
_CLIENT_NAME = "mediaingest-api"


class IngestionAPIClient:
    """Thin wrapper over an injected ``httpx.AsyncClient``.

    The client's ``base_url`` must point at the server root; every request
    carries *tenant_id* in the ``X-Tenant-ID`` header.
    """

    def __init__(self, http_client: httpx.AsyncClient, tenant_id: str) -> None:
        self._http = http_client
        self._tenant_id = tenant_id

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    # ------------------------------------------------------------------
    # Event-stream endpoints
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        path: str | Path,
        mime_type: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Upload a local file through the server (upload mode)."""
        file_path = Path(path)
        content_type = mime_type or mimetypes.guess_type(file_path.name)[0]
        content_type = content_type or "application/octet-stream"
        files = {"file": (file_path.name, file_path.read_bytes(), content_type)}
        async for event in self._stream("/ingest/upload", files=files):
            yield event

    async def import_url(self, url: str, title: str | None = None) -> AsyncIterator[ProgressEvent]:
        """Have the server download and ingest *url* (URL mode)."""
        body: dict[str, Any] = {"url": url}
        if title:
            body["title"] = title
        async for event in self._stream("/ingest/url", json=body):
            yield event

    async def request_direct(
        self,
        file_name: str,
        size: int,
        mime_type: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Ask for a direct-upload credential; the stream ends with it."""
        body = {"file_name": file_name, "mime_type": mime_type, "size": size}
        async for event in self._stream("/ingest/direct", json=body):
            yield event

    # ------------------------------------------------------------------
    # JSON endpoints
    # ------------------------------------------------------------------

    async def register_file(self, token: str, provider_file_name: str) -> FileRecordResponse:
        response = await self._http.post(
            f"{_API_PREFIX}/files",
            json={"token": token, "provider_file_name": provider_file_name},
            headers=self._headers(),
        )
        self._raise_for_status(response, "register")
        return FileRecordResponse.model_validate(response.json())

    async def list_files(self, limit: int = 100) -> FileListResponse:
        response = await self._http.get(
            f"{_API_PREFIX}/files",
            params={"limit": limit},
            headers=self._headers(),
        )
        self._raise_for_status(response, "list")
        return FileListResponse.model_validate(response.json())

    async def get_file(self, file_id: str) -> FileRecordResponse | None:
        """Return one record, or ``None`` when the server has no such file."""
        response = await self._http.get(
            f"{_API_PREFIX}/files/{file_id}",
            headers=self._headers(),
        )
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "get")
        return FileRecordResponse.model_validate(response.json())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {"X-Tenant-ID": self._tenant_id}

    async def _stream(self, path: str, **kwargs: Any) -> AsyncIterator[ProgressEvent]:
        headers = {**self._headers(), "Accept": SSE_MEDIA_TYPE}
        async with self._http.stream(
            "POST", f"{_API_PREFIX}{path}", headers=headers, **kwargs
        ) as response:
            if response.is_error:
                await response.aread()
                self._raise_for_status(response, path.rsplit("/", 1)[-1])
            async for event in iter_events(response.aiter_bytes()):
                yield event
                if event.is_terminal:
                    break

    @staticmethod
    def _raise_for_status(response: httpx.Response, operation: str) -> None:
        if not response.is_error:
            return
        detail = _error_detail(response)
        logger.warning(
            "api_request_failed",
            operation=operation,
            status=response.status_code,
            detail=detail,
        )
        raise TransferError(
            message=f"API {operation} returned HTTP {response.status_code}: {detail}",
            provider_name=_CLIENT_NAME,
            user_message=detail,
            status_code=response.status_code,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.text[:200]
