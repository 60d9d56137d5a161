"""Business logic for ingestion: upload handshake, polling, and source checks."""

from mediaingest.services.credential_service import IssuedUpload, UploadCredentialService
from mediaingest.services.readiness_poller import ReadinessPoller
from mediaingest.services.remote_fetcher import FetchedFile, RemoteFileFetcher
from mediaingest.services.resumable_upload import ResumableUploadClient
from mediaingest.services.url_policy import AcceptedUrl, UrlPolicy

__all__ = [
    "AcceptedUrl",
    "FetchedFile",
    "IssuedUpload",
    "ReadinessPoller",
    "RemoteFileFetcher",
    "ResumableUploadClient",
    "UploadCredentialService",
    "UrlPolicy",
]
