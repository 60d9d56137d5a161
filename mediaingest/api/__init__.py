"""mediaingest API layer: routes, schemas, and middleware."""

from mediaingest.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from mediaingest.api.routes import router
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

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "DirectUploadRequest",
    "ErrorResponse",
    "FileListResponse",
    "FileRecordResponse",
    "HealthResponse",
    "ProviderFileStatusResponse",
    "RegisterFileRequest",
    "UrlImportRequest",
]
