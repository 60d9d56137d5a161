"""Shared utilities: structured logging, the error hierarchy, and formatting helpers."""

from mediaingest.utils.errors import (
    ConfigurationError,
    IngestionCancelled,
    MediaIngestError,
    PersistenceError,
    PipelineError,
    ProcessingFailed,
    ProcessingTimeout,
    ProviderProtocolError,
    SourceFetchError,
    TransferError,
    ValidationError,
)
from mediaingest.utils.formatting import format_file_size, format_megabytes
from mediaingest.utils.logging import bind_job_context, configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "IngestionCancelled",
    "MediaIngestError",
    "PersistenceError",
    "PipelineError",
    "ProcessingFailed",
    "ProcessingTimeout",
    "ProviderProtocolError",
    "SourceFetchError",
    "TransferError",
    "ValidationError",
    "bind_job_context",
    "configure_logging",
    "format_file_size",
    "format_megabytes",
]
