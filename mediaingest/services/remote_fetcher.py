"""Server-side download of a remote file for URL import.

Many storage hosts are picky about request headers, so the fetch tries up
to three header strategies in order and uses the first one that yields a
2xx response:

    1. browser-like headers (User-Agent, Accept, Referer/Origin of the URL)
    2. a minimal User-Agent only
    3. a minimal User-Agent plus ``Range: bytes=0-``

The body is streamed, never read in one go.  A declared ``Content-Length``
above the ceiling aborts before any body byte is read, and the running
total is checked after every chunk so an undeclared oversize body is cut
off as soon as it passes the ceiling.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
import structlog

from mediaingest.interfaces.byte_source import ProgressCallback
from mediaingest.models.events import IngestionPhase, ProgressEvent
from mediaingest.services.file_types import normalize_mime_type
from mediaingest.utils.errors import SourceFetchError, ValidationError
from mediaingest.utils.formatting import format_file_size, format_megabytes

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 120.0
_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_MINIMAL_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass(frozen=True)
class FetchedFile:
    """A fully downloaded remote body."""

    data: bytes
    content_type: str
    final_url: str

    @property
    def size(self) -> int:
        return len(self.data)


class RemoteFileFetcher:
    """Downloads a URL into memory under a hard byte ceiling.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` (shared connection pool).
    max_bytes:
        Hard ceiling; anything larger raises :class:`ValidationError`.
    timeout:
        Per-request timeout in seconds.
    user_agent:
        User-Agent for the fallback strategies.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_bytes: int,
        timeout: float = _DEFAULT_TIMEOUT,
        user_agent: str = _MINIMAL_USER_AGENT,
    ) -> None:
        self._http = http_client
        self._max_bytes = max_bytes
        self._timeout = timeout
        self._user_agent = user_agent

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    async def fetch(self, url: str, report: ProgressCallback | None = None) -> FetchedFile:
        """Download *url*, trying each header strategy in turn.

        Raises
        ------
        ValidationError
            If the body is HTML, empty, or larger than the ceiling.
        SourceFetchError
            If no strategy gets a 2xx response or the body download fails.
        """
        last_status = "unknown No response"

        for strategy, headers in self._strategies(url):
            try:
                async with self._http.stream(
                    "GET",
                    url,
                    headers=headers,
                    follow_redirects=True,
                    timeout=self._timeout,
                ) as response:
                    if not response.is_success:
                        last_status = f"{response.status_code} {response.reason_phrase}"
                        logger.info(
                            "remote_fetch_strategy_rejected",
                            strategy=strategy,
                            status=response.status_code,
                        )
                        continue
                    logger.debug("remote_fetch_strategy_ok", strategy=strategy)
                    return await self._read_body(response, report)
            except httpx.HTTPError as exc:
                logger.info("remote_fetch_strategy_failed", strategy=strategy, error=str(exc))
                continue

        raise SourceFetchError(
            message=f"All fetch strategies failed for {url} (last: {last_status})",
            user_message=(
                f"Failed to fetch file from URL. Server responded with: {last_status}. "
                "This URL may not allow direct downloads. Try using a direct file link."
            ),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _strategies(self, url: str) -> list[tuple[str, dict[str, str]]]:
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        return [
            (
                "browser",
                {
                    "User-Agent": _BROWSER_USER_AGENT,
                    "Accept": "*/*",
                    "Accept-Language": "en-US,en;q=0.9",
                    "Accept-Encoding": "identity",
                    "Referer": origin,
                    "Origin": origin,
                },
            ),
            ("minimal", {"User-Agent": self._user_agent}),
            ("range", {"User-Agent": self._user_agent, "Range": "bytes=0-"}),
        ]

    def _too_large(self, size: int) -> ValidationError:
        return ValidationError(
            message=(
                f"File too large ({format_megabytes(size)}). "
                f"Maximum size for URL import is {format_megabytes(self._max_bytes)}."
            )
        )

    async def _read_body(
        self, response: httpx.Response, report: ProgressCallback | None
    ) -> FetchedFile:
        content_type = normalize_mime_type(response.headers.get("content-type"))
        if content_type == "text/html":
            raise ValidationError(
                message=(
                    "The URL returned an HTML page instead of a file. "
                    "Please use a direct file URL."
                )
            )

        declared = response.headers.get("content-length", "")
        declared_size = int(declared) if declared.isdigit() else None
        if declared_size is not None and declared_size > self._max_bytes:
            raise self._too_large(declared_size)

        if report is not None:
            await report(ProgressEvent.status(IngestionPhase.DOWNLOADING))
            shown = format_file_size(declared_size) if declared_size else "file"
            await report(ProgressEvent.progress(f"Downloading {shown}..."))

        buffer = bytearray()
        try:
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self._max_bytes:
                    raise self._too_large(len(buffer))
        except httpx.HTTPError as exc:
            raise SourceFetchError(
                message=f"Body download failed for {response.url}: {exc}",
                user_message=(
                    "Failed to download file data. The server may have closed the connection."
                ),
            ) from exc

        if not buffer:
            raise ValidationError(message="Downloaded file is empty")

        logger.info("remote_fetch_complete", size=len(buffer), content_type=content_type)
        return FetchedFile(data=bytes(buffer), content_type=content_type, final_url=str(response.url))
