"""Concrete byte sources, one per input mode.

All three modes share the ingestion pipeline; what differs is where the
bytes come from and which ceiling applies:

    ServerBufferSource   4.5MB  bytes posted to this server
    RemoteFetchSource    100MB  bytes downloaded from an allowed URL
    BrowserDirectSource  per-category provider limits (2GB / 20MB / 50MB);
                         the browser sends the bytes, this server never sees them
"""

from __future__ import annotations

from mediaingest.interfaces.byte_source import ByteSource, ProgressCallback, SourcePayload
from mediaingest.models.events import IngestionPhase, ProgressEvent
from mediaingest.models.ingestion import FileCategory, SourceMode
from mediaingest.services import file_types
from mediaingest.services.remote_fetcher import RemoteFileFetcher
from mediaingest.services.url_policy import AcceptedUrl, UrlPolicy
from mediaingest.utils.errors import PipelineError, ValidationError
from mediaingest.utils.formatting import format_megabytes


class ServerBufferSource(ByteSource):
    """Upload mode: the whole file arrived in the request body."""

    mode = SourceMode.UPLOAD

    def __init__(
        self,
        data: bytes,
        mime_type: str | None,
        file_name: str,
        max_bytes: int,
        total_size: int | None = None,
    ) -> None:
        self._data = data
        # The request body may have been cut off at the ceiling; total_size
        # is the size the client declared.
        self._total_size = max(total_size or 0, len(data))
        self._mime_type = file_types.normalize_mime_type(mime_type)
        self._file_name = file_name or "upload"
        self._max_bytes = max_bytes
        self._category = FileCategory.UNKNOWN

    @property
    def display_name(self) -> str:
        return self._file_name

    @property
    def declared_size(self) -> int:
        return self._total_size

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def validate(self) -> None:
        if not self._data:
            raise ValidationError(message="File is empty")
        if self._total_size > self._max_bytes:
            raise ValidationError(
                message=(
                    f"File too large ({format_megabytes(self._total_size)}). Maximum size for "
                    f"server upload is {format_megabytes(self._max_bytes)}. "
                    "Use direct upload for larger files."
                )
            )
        if not self._mime_type or self._mime_type == file_types.DEFAULT_MIME_TYPE:
            self._mime_type = file_types.mime_for_filename(self._file_name)
        self._category = file_types.check_supported(
            self._mime_type, self._file_name, len(self._data)
        )

    async def load(self, report: ProgressCallback) -> SourcePayload:
        return SourcePayload(
            data=self._data,
            mime_type=self._mime_type,
            display_name=self._file_name,
            category=self._category,
        )


class RemoteFetchSource(ByteSource):
    """URL mode: download the file server-side, then upload it."""

    mode = SourceMode.URL

    def __init__(
        self,
        url: str,
        policy: UrlPolicy,
        fetcher: RemoteFileFetcher,
        title: str | None = None,
    ) -> None:
        self._url = url
        self._policy = policy
        self._fetcher = fetcher
        self._title = (title or "").strip() or None
        self._accepted: AcceptedUrl | None = None

    @property
    def display_name(self) -> str:
        if self._title:
            return self._title
        if self._accepted is not None:
            return self._accepted.file_name
        return "import"

    @property
    def declared_size(self) -> int:
        return 0

    @property
    def max_bytes(self) -> int:
        return self._fetcher.max_bytes

    @property
    def source_url(self) -> str:
        return self._accepted.url if self._accepted is not None else self._url

    def validate(self) -> None:
        self._accepted = self._policy.check(self._url)

    async def load(self, report: ProgressCallback) -> SourcePayload:
        accepted = self._accepted or self._policy.check(self._url)
        self._accepted = accepted

        await report(ProgressEvent.status(IngestionPhase.FETCHING))
        await report(ProgressEvent.progress(f"Fetching {accepted.file_name} from {accepted.host}..."))
        fetched = await self._fetcher.fetch(accepted.url, report)

        # Generic or missing content types fall back to the URL's extension.
        mime_type = fetched.content_type
        if not mime_type or mime_type in (file_types.DEFAULT_MIME_TYPE, "binary/octet-stream"):
            mime_type = file_types.mime_for_filename(accepted.file_name)

        return SourcePayload(
            data=fetched.data,
            mime_type=mime_type,
            display_name=self.display_name,
            category=file_types.resolve_category(mime_type, accepted.file_name),
            source_url=accepted.url,
        )


class BrowserDirectSource(ByteSource):
    """Direct mode: only declared facts arrive; the browser uploads the bytes."""

    mode = SourceMode.DIRECT
    executes_remotely = True

    def __init__(self, file_name: str, mime_type: str | None, size: int) -> None:
        self._file_name = file_name
        self._mime_type = file_types.normalize_mime_type(mime_type) or file_types.mime_for_filename(
            file_name
        )
        self._size = size
        self._category = file_types.resolve_category(self._mime_type, file_name)

    @property
    def display_name(self) -> str:
        return self._file_name

    @property
    def declared_size(self) -> int:
        return self._size

    @property
    def declared_mime_type(self) -> str:
        return self._mime_type

    @property
    def declared_category(self) -> FileCategory:
        return self._category

    @property
    def max_bytes(self) -> int:
        if self._category is FileCategory.UNKNOWN:
            return 0
        return file_types.max_bytes_for(self._category)

    def validate(self) -> None:
        if not self._file_name.strip():
            raise ValidationError(message="File name is required")
        self._category = file_types.check_supported(self._mime_type, self._file_name, self._size)

    async def load(self, report: ProgressCallback) -> SourcePayload:
        raise PipelineError(
            message="Direct uploads are executed by the browser; no bytes reach this server"
        )
