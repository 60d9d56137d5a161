"""API middleware: CORS, request logging, and error handling.

Converts ``MediaIngestError`` subclasses raised by the JSON routes into
``ErrorResponse`` bodies.  The ``/ingest/*`` streaming routes never reach
the error handler for job failures: those become a terminal ``{error}``
event inside the stream instead.

# ─── MIDDLEWARE EXECUTION ORDER (Junior Developer Guide) ───────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)    # added 1st -> inner
#     app.add_middleware(RequestLoggingMiddleware)   # added 2nd -> outermost
#
#   Request flow:
#     Client -> RequestLogging -> ErrorHandling -> route handler
#
# RequestLoggingMiddleware therefore logs the status code the client
# actually received, including the ones ErrorHandling produced.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from mediaingest.api.schemas import ErrorResponse
from mediaingest.utils.errors import (
    MediaIngestError,
    ProcessingFailed,
    ProcessingTimeout,
    ProviderProtocolError,
    SourceFetchError,
    TransferError,
    ValidationError,
)
from mediaingest.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Failures of an upstream service map to 502; everything else is ours (500).
_UPSTREAM_ERRORS = (
    ProviderProtocolError,
    TransferError,
    ProcessingFailed,
    ProcessingTimeout,
    SourceFetchError,
)


def status_code_for(exc: MediaIngestError) -> int:
    """Return the HTTP status code a JSON route answers *exc* with."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, _UPSTREAM_ERRORS):
        return 502
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Browsers in direct mode call this API from the frontend origin, and
    the event-stream responses must be readable cross-origin too.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration.

    For streaming routes the duration covers the time until the response
    headers were sent, not the whole stream.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
                tenant_id=request.headers.get("x-tenant-id"),
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``MediaIngestError`` subclasses and return structured JSON errors.

    The client sees the error class name and the humanised user message;
    the internal message and provider name are logged server-side only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except MediaIngestError as exc:
            status_code = status_code_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.user_message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
