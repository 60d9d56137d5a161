"""mediaingest domain models, re-exporting all public model classes.

    - ingestion.py - job lifecycle, provider handle, persisted record, credential
    - events.py    - event-stream records and the phase → percentage mapping
"""

from __future__ import annotations

from mediaingest.models.events import (
    EventKind,
    IngestionPhase,
    ProgressEvent,
    percent_for_status,
    progress_percent,
)
from mediaingest.models.ingestion import (
    FileCategory,
    IngestionJob,
    JobState,
    PersistedFileRecord,
    ProviderFileHandle,
    ProviderFileState,
    SourceMode,
    UploadCredential,
)

__all__ = [
    "EventKind",
    "FileCategory",
    "IngestionJob",
    "IngestionPhase",
    "JobState",
    "PersistedFileRecord",
    "ProgressEvent",
    "ProviderFileHandle",
    "ProviderFileState",
    "SourceMode",
    "UploadCredential",
    "percent_for_status",
    "progress_percent",
]
