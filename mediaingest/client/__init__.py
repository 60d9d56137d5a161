"""Python client for a running mediaingest server."""

from mediaingest.client.api_client import IngestionAPIClient
from mediaingest.client.direct_upload import DirectUploadRunner

__all__ = ["DirectUploadRunner", "IngestionAPIClient"]
