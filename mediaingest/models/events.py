"""Progress event models for the ingestion event stream.

A job's HTTP response body is a sequence of :class:`ProgressEvent` records.
Five payload shapes exist on the wire:

    {"progress": "<human text>"}          - free-form progress line
    {"status": "<IngestionPhase>"}         - structured phase transition
    {"error": "<human text>"}              - terminal: the job failed
    {"success": true, ...final fields}     - terminal: the job succeeded
    {"done": true}                         - terminal: finished, no payload

Exactly one terminal event closes every stream.

The advisory progress-bar percentage is derived from the structured
:class:`IngestionPhase` by :func:`progress_percent`, never from the wording
of progress lines.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Tag of a :class:`ProgressEvent`."""

    PROGRESS = "progress"
    STATUS = "status"
    ERROR = "error"
    SUCCESS = "success"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self in (EventKind.ERROR, EventKind.SUCCESS, EventKind.DONE)


class IngestionPhase(str, Enum):  # noqa: UP042
    """Coarse phases reported in ``{"status": ...}`` events."""

    VALIDATING = "VALIDATING"
    FETCHING = "FETCHING"
    DOWNLOADING = "DOWNLOADING"
    INITIALIZING = "INITIALIZING"
    TRANSFERRING = "TRANSFERRING"
    PROCESSING = "PROCESSING"
    SAVING = "SAVING"
    READY = "READY"
    CREDENTIAL_ISSUED = "CREDENTIAL_ISSUED"


# Percentage reached when a phase *starts*.  PROCESSING spans 60 → 90
# depending on how much of the poll budget has been used.
_PHASE_PERCENT: dict[IngestionPhase, int] = {
    IngestionPhase.VALIDATING: 5,
    IngestionPhase.CREDENTIAL_ISSUED: 10,
    IngestionPhase.FETCHING: 10,
    IngestionPhase.DOWNLOADING: 20,
    IngestionPhase.INITIALIZING: 30,
    IngestionPhase.TRANSFERRING: 45,
    IngestionPhase.PROCESSING: 60,
    IngestionPhase.SAVING: 95,
    IngestionPhase.READY: 100,
}
_PROCESSING_SPAN = 30


def progress_percent(phase: IngestionPhase, attempt: int = 0, max_attempts: int = 0) -> int:
    """Return the advisory completion percentage (0-100) for *phase*.

    For PROCESSING, *attempt* out of *max_attempts* interpolates across the
    60-90 band; other phases ignore the attempt counters.
    """
    base = _PHASE_PERCENT[phase]
    if phase is IngestionPhase.PROCESSING and max_attempts > 0:
        used = min(max(attempt, 0), max_attempts)
        return base + (used * _PROCESSING_SPAN) // max_attempts
    return base


def percent_for_status(status: str | None) -> int | None:
    """Map a status string from the wire to a percentage.

    Unrecognised or empty strings return ``None``; this never raises, so a
    newer server can add phases without breaking older consumers.
    """
    if not status:
        return None
    try:
        phase = IngestionPhase(status.strip().upper())
    except ValueError:
        return None
    return progress_percent(phase)


class ProgressEvent(BaseModel):
    """One record of the event stream.

    ``message`` holds the text for progress/status/error events; ``result``
    holds the final fields of a success event.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    message: str | None = None
    result: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind.is_terminal

    @property
    def percent(self) -> int | None:
        """Advisory percentage for status events, 100 for success, else ``None``."""
        if self.kind is EventKind.STATUS:
            return percent_for_status(self.message)
        if self.kind is EventKind.SUCCESS:
            return 100
        return None

    # -- Constructors ---------------------------------------------------

    @classmethod
    def progress(cls, text: str) -> ProgressEvent:
        return cls(kind=EventKind.PROGRESS, message=text)

    @classmethod
    def status(cls, phase: IngestionPhase) -> ProgressEvent:
        return cls(kind=EventKind.STATUS, message=phase.value)

    @classmethod
    def error(cls, text: str) -> ProgressEvent:
        return cls(kind=EventKind.ERROR, message=text)

    @classmethod
    def success(cls, **fields: Any) -> ProgressEvent:
        return cls(kind=EventKind.SUCCESS, result=fields)

    @classmethod
    def done(cls) -> ProgressEvent:
        return cls(kind=EventKind.DONE)

    # -- Wire mapping ---------------------------------------------------

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-serialisable wire payload for this event."""
        if self.kind is EventKind.SUCCESS:
            return {"success": True, **self.result}
        if self.kind is EventKind.DONE:
            return {"done": True}
        return {self.kind.value: self.message or ""}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ProgressEvent:
        """Rebuild an event from a decoded wire payload.

        Terminal tags win over non-terminal ones, so a payload carrying both
        ``error`` and ``progress`` is read as an error.
        """
        if "error" in payload:
            return cls.error(str(payload["error"]))
        if payload.get("success"):
            fields = {k: v for k, v in payload.items() if k != "success"}
            return cls.success(**fields)
        if payload.get("done"):
            return cls.done()
        if "status" in payload:
            return cls(kind=EventKind.STATUS, message=str(payload["status"]))
        return cls.progress(str(payload.get("progress", "")))
