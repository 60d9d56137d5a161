"""Short-lived upload credentials for direct browser-to-provider uploads.

In direct mode the bytes never touch this server: the browser receives an
:class:`UploadCredential`, runs the resumable handshake and the readiness
polling against the provider itself, and then presents the credential's
token back to register the finished file.

Credentials live in an in-process ``cachetools.TTLCache``, so they expire
on their own and vanish on restart (there is no durable job state).
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from cachetools import TTLCache

from mediaingest.models.ingestion import IngestionJob, UploadCredential
from mediaingest.utils.errors import ConfigurationError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

_TOKEN_BYTES = 32
_INVALID_MESSAGE = "Upload credential is unknown or has expired. Start the upload again."


@dataclass(frozen=True)
class IssuedUpload:
    """A credential together with the declared job it was issued for."""

    credential: UploadCredential
    job: IngestionJob


class UploadCredentialService:
    """Issues and redeems direct-mode upload credentials.

    Parameters
    ----------
    api_key:
        Provider API key handed to the browser inside the credential.
    provider_base_url:
        Root URL of the provider API the browser should talk to.
    ttl_seconds:
        Lifetime of a credential.
    max_entries:
        Upper bound on outstanding credentials; the oldest are evicted first.
    timer:
        Monotonic clock for the cache, injectable for tests.
    """

    def __init__(
        self,
        api_key: str,
        provider_base_url: str,
        ttl_seconds: int = 900,
        max_entries: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_key = api_key
        self._provider_base_url = provider_base_url.rstrip("/")
        self._ttl = ttl_seconds
        self._cache: TTLCache[str, IssuedUpload] = TTLCache(
            maxsize=max_entries, ttl=ttl_seconds, timer=timer
        )

    def issue(self, job: IngestionJob, max_bytes: int) -> UploadCredential:
        """Create and remember a credential for the direct-mode *job*.

        Raises
        ------
        ConfigurationError
            If no provider API key is configured.
        """
        if not self._api_key:
            raise ConfigurationError(message="GEMINI_API_KEY is not configured", provider_name="gemini")

        credential = UploadCredential(
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            job_id=job.job_id,
            tenant_id=job.tenant_id,
            api_key=self._api_key,
            provider_base_url=self._provider_base_url,
            max_bytes=max_bytes,
            expires_at=datetime.now(tz=timezone.utc) + timedelta(seconds=self._ttl),  # noqa: UP017
        )
        self._cache[credential.token] = IssuedUpload(credential=credential, job=job)
        logger.info("upload_credential_issued", job_id=job.job_id, tenant_id=job.tenant_id)
        return credential

    def redeem(self, token: str, tenant_id: str) -> IssuedUpload:
        """Look up *token* for *tenant_id*.

        Redeeming does not consume the credential, so a retried
        registration of the same job can present it again until it expires.

        Raises
        ------
        ValidationError
            If the token is unknown, expired, or belongs to another tenant.
        """
        issued = self._cache.get(token)
        if (
            issued is None
            or issued.credential.is_expired()
            or issued.credential.tenant_id != tenant_id
        ):
            logger.info("upload_credential_rejected", tenant_id=tenant_id)
            raise ValidationError(message=_INVALID_MESSAGE)
        return issued

    def __len__(self) -> int:
        return len(self._cache)
