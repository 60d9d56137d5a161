"""Pipeline orchestration components for mediaingest."""

from mediaingest.pipeline.byte_sources import (
    BrowserDirectSource,
    RemoteFetchSource,
    ServerBufferSource,
)
from mediaingest.pipeline.event_stream import (
    EventStreamDecoder,
    ProgressEventEmitter,
    encode_event,
    iter_events,
)
from mediaingest.pipeline.ingestion_pipeline import IngestionPipeline

__all__ = [
    "BrowserDirectSource",
    "EventStreamDecoder",
    "IngestionPipeline",
    "ProgressEventEmitter",
    "RemoteFetchSource",
    "ServerBufferSource",
    "encode_event",
    "iter_events",
]
