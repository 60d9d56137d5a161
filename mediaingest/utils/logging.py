"""Structured logging for the ingestion service and its clients.

One structlog processor chain serves every process that imports
mediaingest (the API server, the CLI, the direct-upload runner).  It ends
in a coloured ConsoleRenderer during development or a JSONRenderer when
``APP_ENV=production`` or ``json_output`` is set.

Two things are specific to this service:

* Job identity.  :func:`bind_job_context` puts ``job_id``, ``tenant_id``
  and ``source_mode`` into contextvars, and the chain merges them into
  every line the job's task writes.
* Credentials.  A direct-mode credential carries the provider API key and
  a registration token.  :func:`redact_credentials` masks those fields
  before any renderer sees them, including inside the nested
  ``credential`` dict of a logged event payload.

Standard-library ``logging`` goes through the same chain so uvicorn and
httpx lines look like ours.  httpx is held at WARNING because readiness
polling would otherwise log one request line every few seconds per job.
"""

import logging
import os
import sys
from collections.abc import Mapping
from typing import Any

import structlog

REDACTED = "***"

_SECRET_KEYS = frozenset({"api_key", "token", "x-goog-api-key", "authorization"})

_CHATTY_LIBRARIES = ("httpx", "httpcore")


def redact_credentials(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Mask credential fields anywhere in *event_dict*."""
    return _redact(event_dict)


def _redact(mapping: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(key, str) and key.lower() in _SECRET_KEYS and value:
            cleaned[key] = REDACTED
        elif isinstance(value, Mapping):
            cleaned[key] = _redact(value)
        else:
            cleaned[key] = value
    return cleaned


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Install the processor chain for structlog and stdlib logging.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  Otherwise JSON is used only when
                     ``APP_ENV`` is ``"production"``.

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    # Job bindings are merged first so redaction also covers them.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_credentials,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *shared_processors,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_job_context(job_id: str, tenant_id: str, source_mode: str) -> None:
    """Bind job identity to every log line emitted by the current task.

    The ingestion pipeline runs each job in its own asyncio task, and tasks
    copy the context on creation, so bindings made here never leak into a
    concurrent job.
    """
    structlog.contextvars.bind_contextvars(
        job_id=job_id,
        tenant_id=tenant_id,
        source_mode=source_mode,
    )
