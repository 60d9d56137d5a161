"""mediaingest FastAPI application entry point.

Wires together the file-API provider, the metadata store, the ingestion
services, and the routes via dependency injection.  Loads configuration
from ``.env`` and ``config/config.yaml`` and configures structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from mediaingest import __version__
from mediaingest.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from mediaingest.api.routes import router as api_router
from mediaingest.config.loader import load_config
from mediaingest.config.settings import Settings
from mediaingest.pipeline.ingestion_pipeline import IngestionPipeline
from mediaingest.providers.file_api.gemini_provider import GeminiFileAPIProvider
from mediaingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from mediaingest.services.credential_service import UploadCredentialService
from mediaingest.services.readiness_poller import DEFAULT_HEARTBEAT_EVERY, ReadinessPoller
from mediaingest.services.remote_fetcher import RemoteFileFetcher
from mediaingest.services.resumable_upload import ResumableUploadClient
from mediaingest.services.url_policy import UrlPolicy
from mediaingest.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component assembly
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.provider_timeout_seconds)

    # -- Processing provider --
    file_provider = GeminiFileAPIProvider(
        api_key=app_settings.gemini_api_key,
        http_client=http_client,
        base_url=app_settings.provider_base_url,
        timeout=app_settings.provider_timeout_seconds,
    )

    # -- Metadata store --
    metadata_store = SQLiteMetadataStore(db_path=app_settings.metadata_db_path)

    # -- Upload + readiness --
    polling_cfg = app_config.get("polling", {})
    upload_client = ResumableUploadClient(provider=file_provider)
    poller = ReadinessPoller(
        provider=file_provider,
        interval_seconds=app_settings.poll_interval_seconds,
        max_attempts=app_settings.poll_max_attempts,
        heartbeat_every=int(polling_cfg.get("heartbeat_every", DEFAULT_HEARTBEAT_EVERY)),
    )

    # -- Direct-mode credentials --
    credential_service = UploadCredentialService(
        api_key=app_settings.gemini_api_key,
        provider_base_url=app_settings.provider_base_url,
        ttl_seconds=app_settings.credential_ttl_seconds,
        max_entries=app_settings.credential_cache_size,
    )

    # -- URL import --
    url_cfg = app_config.get("url_import", {})
    url_policy = UrlPolicy(allowed_hosts=url_cfg.get("allowed_hosts", app_settings.url_allowed_hosts))
    fetcher_kwargs: dict[str, Any] = {}
    if url_cfg.get("user_agent"):
        fetcher_kwargs["user_agent"] = url_cfg["user_agent"]
    remote_fetcher = RemoteFileFetcher(
        http_client=http_client,
        max_bytes=app_settings.url_import_max_bytes,
        timeout=app_settings.url_fetch_timeout_seconds,
        **fetcher_kwargs,
    )

    pipeline = IngestionPipeline(
        upload_client=upload_client,
        poller=poller,
        store=metadata_store,
        credentials=credential_service,
    )

    return {
        "http_client": http_client,
        "file_provider": file_provider,
        "metadata_store": metadata_store,
        "credential_service": credential_service,
        "pipeline": pipeline,
        "url_policy": url_policy,
        "remote_fetcher": remote_fetcher,
        "upload_max_bytes": app_settings.upload_max_bytes,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["metadata_store"].initialize()

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        provider=components["file_provider"].get_provider_name(),
        provider_configured=settings.provider_configured(),
        allowed_hosts=len(components["url_policy"].allowed_hosts),
    )

    yield

    # -- Shutdown: close shared httpx client --
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="mediaingest API",
        version=__version__,
        description=(
            "Ingest media files into a processing provider from a server upload, "
            "a remote URL, or a direct browser upload, streaming progress as "
            "server-sent events and persisting file metadata once ready."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "mediaingest.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
