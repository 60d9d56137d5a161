"""Progress event stream: the emitter on the server and the decoder on the client.

Wire format, one record per event::

    data: {"status": "INITIALIZING"}\\n\\n
    data: {"progress": "Uploading 3.2 MB..."}\\n\\n
    data: {"success": true, "file": {...}}\\n\\n

# ─── HOW THE STREAM FLOWS (Junior Developer Guide) ─────────────────────
#
#   pipeline task ──emit()──→ ProgressEventEmitter (asyncio.Queue)
#                                  │
#                         frames() │ drained by the StreamingResponse
#                                  ▼
#              HTTP body ──bytes──→ EventStreamDecoder.feed() ──→ events
#
# The emitter has exactly one writer (the job's pipeline task) and one
# reader (the response generator).  It refuses anything after the first
# terminal event (error, success or done), so every stream ends with
# exactly one of them.  ``close()`` pushes a sentinel that ends
# ``frames()``.
#
# The decoder works on bytes, not text: a chunk boundary can land inside
# a multi-byte UTF-8 character or between the two newlines of the
# delimiter.  Only complete records are decoded.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterable, AsyncIterator

import structlog

from mediaingest.models.events import ProgressEvent
from mediaingest.utils.errors import PipelineError, ProviderProtocolError

logger = structlog.get_logger(logger_name=__name__)

RECORD_DELIMITER = b"\n\n"
_DATA_FIELD = b"data:"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"


def encode_event(event: ProgressEvent) -> bytes:
    """Serialise *event* to one ``data: <json>\\n\\n`` record."""
    # json.dumps escapes newlines, so the payload is always a single line.
    payload = json.dumps(event.to_payload(), ensure_ascii=False, default=str)
    return f"data: {payload}\n\n".encode()


# ---------------------------------------------------------------------------
# Producer side
# ---------------------------------------------------------------------------


class ProgressEventEmitter:
    """Ordered, single-terminal event queue for one job.

    Instances are awaitable callbacks (``await emitter(event)``), so they can
    be handed directly to anything expecting a ``ProgressCallback``.
    """

    def __init__(self, job_id: str | None = None) -> None:
        self._job_id = job_id
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._terminal: ProgressEvent | None = None
        self._closed = False
        self._emitted = 0

    @property
    def terminal_event(self) -> ProgressEvent | None:
        return self._terminal

    @property
    def is_finished(self) -> bool:
        return self._terminal is not None

    @property
    def emitted_count(self) -> int:
        return self._emitted

    async def emit(self, event: ProgressEvent) -> None:
        """Queue *event* for the consumer.

        Raises
        ------
        PipelineError
            If a terminal event was already emitted or the emitter is closed.
        """
        if self._terminal is not None:
            raise PipelineError(
                message=(
                    f"Cannot emit {event.kind.value} after terminal "
                    f"{self._terminal.kind.value} for job {self._job_id}"
                )
            )
        if self._closed:
            raise PipelineError(message=f"Event emitter for job {self._job_id} is closed")

        if event.is_terminal:
            self._terminal = event
        self._emitted += 1
        self._queue.put_nowait(event)
        logger.debug("event_emitted", job_id=self._job_id, kind=event.kind.value)

    async def __call__(self, event: ProgressEvent) -> None:
        await self.emit(event)

    def close(self) -> None:
        """End the stream once the queued events are drained.  Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield queued events in emission order until :meth:`close`."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield each queued event as an encoded wire record."""
        async for event in self.events():
            yield encode_event(event)


# ---------------------------------------------------------------------------
# Consumer side
# ---------------------------------------------------------------------------


class EventStreamDecoder:
    """Incremental parser for the ``data: <json>\\n\\n`` wire format."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[ProgressEvent]:
        """Append *chunk* and return every event it completed, in order."""
        self._buffer.extend(chunk)
        events: list[ProgressEvent] = []
        while True:
            index = self._buffer.find(RECORD_DELIMITER)
            if index == -1:
                break
            record = bytes(self._buffer[:index])
            del self._buffer[: index + len(RECORD_DELIMITER)]
            event = self._parse_record(record)
            if event is not None:
                events.append(event)
        return events

    def close(self) -> list[ProgressEvent]:
        """Flush a final record the server closed without a blank line."""
        record = bytes(self._buffer).strip()
        self._buffer.clear()
        if not record:
            return []
        event = self._parse_record(record)
        return [event] if event is not None else []

    @staticmethod
    def _parse_record(record: bytes) -> ProgressEvent | None:
        data_lines: list[bytes] = []
        for line in record.split(b"\n"):
            line = line.rstrip(b"\r")
            if line.startswith(_DATA_FIELD):
                value = line[len(_DATA_FIELD):]
                data_lines.append(value[1:] if value.startswith(b" ") else value)
        # Records with no data field (comments, keep-alives) carry no event.
        if not data_lines:
            return None

        try:
            payload = json.loads(b"\n".join(data_lines).decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ProviderProtocolError(
                message=f"Malformed event record: {record[:120]!r}",
                provider_name="event-stream",
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderProtocolError(
                message=f"Event payload is not an object: {payload!r}",
                provider_name="event-stream",
            )
        return ProgressEvent.from_payload(payload)


async def iter_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[ProgressEvent]:
    """Decode an async stream of byte chunks into events."""
    decoder = EventStreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.close():
        yield event
