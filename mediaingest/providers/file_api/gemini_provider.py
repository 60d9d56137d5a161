"""Gemini File API provider adapter.

Speaks the Gemini resumable upload protocol over ``httpx``:

    1. ``POST {base}/upload/v1beta/files`` with ``X-Goog-Upload-Command: start``
       -> the session URL comes back in the ``X-Goog-Upload-URL`` header.
    2. ``POST <session URL>`` with the whole payload at offset 0 and
       ``X-Goog-Upload-Command: upload, finalize`` -> ``{"file": {...}}``.
    3. ``GET {base}/v1beta/{name}`` -> ``{"state": "PROCESSING" | "ACTIVE" | "FAILED", ...}``.

Each method issues exactly one request.  Retrying is the caller's decision;
inside a job nothing is retried, because a failed transfer restarts the
whole upload.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.models.ingestion import ProviderFileHandle, ProviderFileState
from mediaingest.utils.errors import ConfigurationError, ProviderProtocolError, TransferError

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
_DEFAULT_TIMEOUT = 300.0
_PROVIDER_NAME = "gemini"


class GeminiFileAPIProvider(IFileAPIProvider):
    """File processing provider backed by the Gemini File API.

    Parameters
    ----------
    api_key:
        The Gemini API key, sent as ``x-goog-api-key`` on every call.
    http_client:
        Injected ``httpx.AsyncClient``.  When omitted the provider creates
        (and owns) its own client; call :meth:`close` to release it.
    base_url:
        Root of the API, without a trailing ``/v1beta``.
    timeout:
        Per-request timeout in seconds.  The transfer of a large file is a
        single request, so this is generous by default.
    """

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    # ------------------------------------------------------------------
    # IFileAPIProvider implementation
    # ------------------------------------------------------------------

    async def start_upload(self, total_bytes: int, mime_type: str, display_name: str) -> str:
        """Open a resumable session and return the session upload URL."""
        self._require_key()
        headers = {
            "x-goog-api-key": self._api_key,
            "X-Goog-Upload-Protocol": "resumable",
            "X-Goog-Upload-Command": "start",
            "X-Goog-Upload-Header-Content-Length": str(total_bytes),
            "X-Goog-Upload-Header-Content-Type": mime_type,
            "Content-Type": "application/json",
        }
        response = await self._send(
            "POST",
            f"{self._base_url}/upload/v1beta/files",
            phase="init",
            headers=headers,
            json={"file": {"display_name": display_name}},
        )

        upload_url = response.headers.get("x-goog-upload-url")
        if not upload_url:
            raise ProviderProtocolError(
                message="Upload init response is missing the X-Goog-Upload-URL header",
                provider_name=_PROVIDER_NAME,
            )
        logger.debug("gemini_upload_session_opened", total_bytes=total_bytes, mime_type=mime_type)
        return upload_url

    async def upload_and_finalize(self, upload_url: str, data: bytes) -> ProviderFileHandle:
        """Send *data* at offset 0 and finalize the session in one request."""
        headers = {
            "Content-Length": str(len(data)),
            "X-Goog-Upload-Offset": "0",
            "X-Goog-Upload-Command": "upload, finalize",
        }
        response = await self._send(
            "POST", upload_url, phase="transfer", headers=headers, content=data
        )

        body = self._json(response, phase="transfer")
        file_info = body.get("file") or {}
        name = file_info.get("name")
        uri = file_info.get("uri")
        if not name or not uri:
            raise ProviderProtocolError(
                message="Upload finalize response is missing file.name or file.uri",
                provider_name=_PROVIDER_NAME,
            )
        state = self._parse_state(file_info.get("state"), allow_missing=True)
        return ProviderFileHandle(name=name, uri=uri, state=state)

    async def get_file(self, name: str) -> ProviderFileHandle:
        """Fetch the current processing state of *name* (``files/...``)."""
        self._require_key()
        response = await self._send(
            "GET",
            f"{self._base_url}/v1beta/{name}",
            phase="status",
            headers={"x-goog-api-key": self._api_key},
        )

        body = self._json(response, phase="status")
        state = self._parse_state(body.get("state"), allow_missing=False)
        uri = body.get("uri")
        if not uri:
            raise ProviderProtocolError(
                message=f"Status response for {name} is missing uri",
                provider_name=_PROVIDER_NAME,
            )
        return ProviderFileHandle(
            name=body.get("name") or name,
            uri=uri,
            state=state,
            size_bytes=_parse_size(body.get("sizeBytes")),
        )

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def close(self) -> None:
        """Close the underlying client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_key(self) -> None:
        if not self._api_key:
            raise ConfigurationError(
                message="GEMINI_API_KEY is not configured",
                provider_name=_PROVIDER_NAME,
            )

    async def _send(self, method: str, url: str, *, phase: str, **kwargs: Any) -> httpx.Response:
        """Issue one request; any transport failure or non-2xx is a TransferError."""
        try:
            response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            raise TransferError(
                message=f"Upload {phase} request failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        if not response.is_success:
            detail = response.text[:200]
            logger.warning(
                "gemini_request_rejected",
                phase=phase,
                status=response.status_code,
                detail=detail,
            )
            raise TransferError(
                message=f"Upload {phase} returned HTTP {response.status_code}: {detail}",
                provider_name=_PROVIDER_NAME,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response, *, phase: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderProtocolError(
                message=f"Upload {phase} response is not valid JSON",
                provider_name=_PROVIDER_NAME,
            ) from exc
        if not isinstance(body, dict):
            raise ProviderProtocolError(
                message=f"Upload {phase} response is not a JSON object",
                provider_name=_PROVIDER_NAME,
            )
        return body

    @staticmethod
    def _parse_state(raw: object, *, allow_missing: bool) -> ProviderFileState | None:
        if raw is None and allow_missing:
            return None
        try:
            return ProviderFileState(raw)
        except ValueError as exc:
            raise ProviderProtocolError(
                message=f"Unknown provider file state: {raw!r}",
                provider_name=_PROVIDER_NAME,
            ) from exc


def _parse_size(raw: object) -> int | None:
    """Read ``sizeBytes``, which the API encodes as a decimal string."""
    if raw is None:
        return None
    try:
        size = int(str(raw))
    except ValueError as exc:
        raise ProviderProtocolError(
            message=f"Invalid sizeBytes in status response: {raw!r}",
            provider_name=_PROVIDER_NAME,
        ) from exc
    return size if size >= 0 else None
