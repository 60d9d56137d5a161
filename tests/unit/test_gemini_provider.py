"""Unit tests for GeminiFileAPIProvider over a mocked httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from mediaingest.models.ingestion import ProviderFileState
from mediaingest.providers.file_api.gemini_provider import GeminiFileAPIProvider
from mediaingest.utils.errors import ConfigurationError, ProviderProtocolError, TransferError

BASE = "https://gemini.example.test"
SESSION_URL = "https://gemini.example.test/upload/session/xyz"


def _provider(handler, api_key: str = "test-key") -> tuple[GeminiFileAPIProvider, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return GeminiFileAPIProvider(api_key=api_key, http_client=client, base_url=BASE), seen


class TestStartUpload:
    @pytest.mark.asyncio
    async def test_sends_resumable_start_headers(self) -> None:
        provider, seen = _provider(
            lambda request: httpx.Response(200, headers={"X-Goog-Upload-URL": SESSION_URL})
        )

        upload_url = await provider.start_upload(2048, "video/mp4", "clip.mp4")

        assert upload_url == SESSION_URL
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/upload/v1beta/files"
        assert request.headers["x-goog-api-key"] == "test-key"
        assert request.headers["X-Goog-Upload-Protocol"] == "resumable"
        assert request.headers["X-Goog-Upload-Command"] == "start"
        assert request.headers["X-Goog-Upload-Header-Content-Length"] == "2048"
        assert request.headers["X-Goog-Upload-Header-Content-Type"] == "video/mp4"
        assert json.loads(request.content) == {"file": {"display_name": "clip.mp4"}}

    @pytest.mark.asyncio
    async def test_missing_session_header_is_protocol_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(200))
        with pytest.raises(ProviderProtocolError, match="X-Goog-Upload-URL"):
            await provider.start_upload(10, "video/mp4", "clip.mp4")

    @pytest.mark.asyncio
    async def test_non_2xx_is_transfer_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(403, text="API key invalid"))
        with pytest.raises(TransferError) as exc_info:
            await provider.start_upload(10, "video/mp4", "clip.mp4")
        assert exc_info.value.status_code == 403
        assert "API key invalid" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_failure_is_transfer_error(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider, _ = _provider(boom)
        with pytest.raises(TransferError) as exc_info:
            await provider.start_upload(10, "video/mp4", "clip.mp4")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_missing_api_key(self) -> None:
        provider, seen = _provider(lambda request: httpx.Response(200), api_key="")
        assert not provider.is_available()
        with pytest.raises(ConfigurationError):
            await provider.start_upload(10, "video/mp4", "clip.mp4")
        assert seen == []


class TestUploadAndFinalize:
    @pytest.mark.asyncio
    async def test_sends_whole_payload_at_offset_zero(self) -> None:
        body = {"file": {"name": "files/abc", "uri": f"{BASE}/v1beta/files/abc", "state": "PROCESSING"}}
        provider, seen = _provider(lambda request: httpx.Response(200, json=body))

        handle = await provider.upload_and_finalize(SESSION_URL, b"payload")

        request = seen[0]
        assert str(request.url) == SESSION_URL
        assert request.headers["X-Goog-Upload-Offset"] == "0"
        assert request.headers["X-Goog-Upload-Command"] == "upload, finalize"
        assert request.headers["Content-Length"] == "7"
        assert request.content == b"payload"
        assert handle.name == "files/abc"
        assert handle.state is ProviderFileState.PROCESSING

    @pytest.mark.asyncio
    async def test_missing_uri_is_protocol_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(200, json={"file": {"name": "files/abc"}}))
        with pytest.raises(ProviderProtocolError, match="file.uri"):
            await provider.upload_and_finalize(SESSION_URL, b"payload")

    @pytest.mark.asyncio
    async def test_non_json_body_is_protocol_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderProtocolError, match="not valid JSON"):
            await provider.upload_and_finalize(SESSION_URL, b"payload")

    @pytest.mark.asyncio
    async def test_server_error_is_transfer_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(TransferError, match="HTTP 500"):
            await provider.upload_and_finalize(SESSION_URL, b"payload")


class TestGetFile:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["PROCESSING", "ACTIVE", "FAILED"])
    async def test_parses_state(self, state: str) -> None:
        body = {"name": "files/abc", "uri": f"{BASE}/v1beta/files/abc", "state": state}
        provider, seen = _provider(lambda request: httpx.Response(200, json=body))

        handle = await provider.get_file("files/abc")

        assert handle.state is ProviderFileState(state)
        assert str(seen[0].url) == f"{BASE}/v1beta/files/abc"
        assert seen[0].method == "GET"

    @pytest.mark.asyncio
    async def test_reads_size_bytes(self) -> None:
        body = {"name": "files/abc", "uri": "u", "state": "ACTIVE", "sizeBytes": "2048"}
        provider, _ = _provider(lambda request: httpx.Response(200, json=body))

        handle = await provider.get_file("files/abc")

        assert handle.size_bytes == 2048

    @pytest.mark.asyncio
    async def test_missing_size_bytes_is_none(self) -> None:
        body = {"name": "files/abc", "uri": "u", "state": "ACTIVE"}
        provider, _ = _provider(lambda request: httpx.Response(200, json=body))
        assert (await provider.get_file("files/abc")).size_bytes is None

    @pytest.mark.asyncio
    async def test_unknown_state_is_protocol_error(self) -> None:
        body = {"name": "files/abc", "uri": "u", "state": "EXPLODED"}
        provider, _ = _provider(lambda request: httpx.Response(200, json=body))
        with pytest.raises(ProviderProtocolError, match="EXPLODED"):
            await provider.get_file("files/abc")

    @pytest.mark.asyncio
    async def test_missing_state_is_protocol_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(200, json={"uri": "u"}))
        with pytest.raises(ProviderProtocolError):
            await provider.get_file("files/abc")

    @pytest.mark.asyncio
    async def test_not_found_is_transfer_error(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(404, text="not found"))
        with pytest.raises(TransferError) as exc_info:
            await provider.get_file("files/missing")
        assert exc_info.value.status_code == 404


class TestProviderMetadata:
    def test_name(self) -> None:
        provider, _ = _provider(lambda request: httpx.Response(200))
        assert provider.get_provider_name() == "gemini"
        assert provider.is_available()

    @pytest.mark.asyncio
    async def test_close_only_releases_own_client(self) -> None:
        shared, _ = _provider(lambda request: httpx.Response(200))
        await shared.close()
        assert not shared._client.is_closed

        owned = GeminiFileAPIProvider(api_key="test-key")
        await owned.close()
        assert owned._client.is_closed
