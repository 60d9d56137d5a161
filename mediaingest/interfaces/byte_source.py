"""Abstract base class for the origin of a job's bytes.

The three input modes (thin-server upload, server-side URL import and
direct browser-to-provider upload) run the same pipeline; they differ only
in where the bytes come from, which size ceiling applies, and who executes
the provider handshake.  Each mode is a :class:`ByteSource`.

    ServerBufferSource   - bytes already in this process (upload mode)
    RemoteFetchSource    - bytes fetched from a remote URL (url mode)
    BrowserDirectSource  - the browser runs the handshake itself (direct mode)

Concrete implementations live in ``mediaingest/pipeline/byte_sources.py``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from mediaingest.models.events import ProgressEvent
from mediaingest.models.ingestion import FileCategory, SourceMode

# Coroutine the source calls to report progress lines while loading.
ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]


@dataclass(frozen=True)
class SourcePayload:
    """The loaded bytes plus the facts the provider handshake needs."""

    data: bytes
    mime_type: str
    display_name: str
    category: FileCategory
    source_url: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


class ByteSource(ABC):
    """Contract for one input mode of the ingestion pipeline."""

    mode: SourceMode
    # True when the caller (the browser) executes the provider handshake
    # itself and this server only issues a credential.
    executes_remotely: bool = False

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Name shown to the provider and stored on the record."""

    @property
    @abstractmethod
    def declared_size(self) -> int:
        """Size declared before loading (0 when not yet known)."""

    @property
    def declared_mime_type(self) -> str:
        """MIME type known before loading."""
        return "application/octet-stream"

    @property
    def declared_category(self) -> FileCategory:
        """Category known before loading."""
        return FileCategory.UNKNOWN

    @property
    @abstractmethod
    def max_bytes(self) -> int:
        """The size ceiling that applies to this source."""

    @abstractmethod
    def validate(self) -> None:
        """Check the declared input without touching the network.

        Raises
        ------
        mediaingest.utils.errors.ValidationError
            If the input is empty, oversize, unsupported or from a
            disallowed source.
        """

    @abstractmethod
    async def load(self, report: ProgressCallback) -> SourcePayload:
        """Produce the bytes to hand to the provider.

        Raises
        ------
        mediaingest.utils.errors.ValidationError
            If the loaded bytes violate a ceiling or are empty.
        mediaingest.utils.errors.SourceFetchError
            If a remote download fails.
        """
