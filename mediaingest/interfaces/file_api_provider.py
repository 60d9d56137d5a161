"""Abstract base class for the external file-processing provider.

Defines the three raw calls of the resumable upload protocol plus the
status lookup used by the readiness poller.  The concrete adapter wraps the
Gemini File API; a test stub (or another provider with the same handshake)
can be dropped in without touching the upload client or the poller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from mediaingest.models.ingestion import ProviderFileHandle


# Concrete implementation: GeminiFileAPIProvider (mediaingest/providers/file_api/)
# Used by ResumableUploadClient (init + transfer) and ReadinessPoller (status).
class IFileAPIProvider(ABC):
    """Contract for a provider exposing resumable upload and status polling.

    Implementations perform exactly one network request per call and never
    retry internally.
    """

    @abstractmethod
    async def start_upload(self, total_bytes: int, mime_type: str, display_name: str) -> str:
        """Open a resumable upload session and return its session upload URL.

        Raises
        ------
        mediaingest.utils.errors.TransferError
            On a non-2xx response or a transport failure.
        mediaingest.utils.errors.ProviderProtocolError
            If the response lacks the session upload URL header.
        """

    @abstractmethod
    async def upload_and_finalize(self, upload_url: str, data: bytes) -> ProviderFileHandle:
        """Send the whole payload at offset 0 and finalize the session.

        Returns
        -------
        ProviderFileHandle
            The provider's identifier and URI for the new file.

        Raises
        ------
        mediaingest.utils.errors.TransferError
            On a non-2xx response or a transport failure.
        mediaingest.utils.errors.ProviderProtocolError
            If the response does not carry the file name and URI.
        """

    @abstractmethod
    async def get_file(self, name: str) -> ProviderFileHandle:
        """Fetch the current state of the provider file *name*.

        The returned handle always has ``state`` set.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"gemini"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are configured."""
