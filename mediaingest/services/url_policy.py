"""Decides whether a remote URL may be fetched server-side.

A URL is accepted only when it is an absolute ``http(s)`` URL and either

* its path (query string ignored) ends in a direct-media extension, or
* its host is on the storage-provider allow-list, or is a subdomain of one.

Everything else, such as a video *page* on a streaming site, is rejected
before any network request is made.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

import structlog

from mediaingest.services.file_types import extension_of
from mediaingest.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

DIRECT_MEDIA_EXTENSIONS: frozenset[str] = frozenset(
    {".mp4", ".mov", ".avi", ".mkv", ".webm", ".flv", ".m4v", ".3gp"}
)

_ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class AcceptedUrl:
    """A URL that passed the policy, plus what was learned parsing it."""

    url: str
    host: str
    file_name: str
    extension: str
    # "extension" or "host": which rule let the URL through.
    matched_by: str


class UrlPolicy:
    """Validates URLs for server-side import without touching the network.

    Parameters
    ----------
    allowed_hosts:
        Storage-provider hosts that may be fetched regardless of the path.
        A URL host matches an entry exactly or as a subdomain of it.
    """

    def __init__(self, allowed_hosts: Iterable[str] = ()) -> None:
        self._allowed_hosts = tuple(
            sorted({h.strip().lower().lstrip(".") for h in allowed_hosts if h.strip()})
        )

    @property
    def allowed_hosts(self) -> tuple[str, ...]:
        return self._allowed_hosts

    def is_allowed_host(self, host: str) -> bool:
        host = host.lower().rstrip(".")
        return any(host == allowed or host.endswith(f".{allowed}") for allowed in self._allowed_hosts)

    def check(self, url: str) -> AcceptedUrl:
        """Return the parsed URL if it may be fetched.

        Raises
        ------
        ValidationError
            If the URL is malformed, not http(s), or matches neither the
            extension rule nor the host allow-list.
        """
        if not url or not url.strip():
            raise ValidationError(message="URL is required")

        candidate = url.strip()
        try:
            parsed = urlparse(candidate)
            host = parsed.hostname or ""
        except ValueError as exc:
            raise ValidationError(message="Invalid URL provided") from exc

        if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not host:
            raise ValidationError(message="Invalid URL provided. Use an absolute http(s) URL.")

        # urlparse already separates the query string and fragment from the path.
        path = unquote(parsed.path)
        file_name = PurePosixPath(path).name
        extension = extension_of(file_name)

        if extension in DIRECT_MEDIA_EXTENSIONS:
            matched_by = "extension"
        elif self.is_allowed_host(host):
            matched_by = "host"
        else:
            logger.info("url_rejected", host=host, path=path)
            raise ValidationError(
                message=(
                    "URL does not point to a direct media file. Use a link ending in a "
                    "video file extension (e.g. .mp4) or a file hosted on a supported "
                    "storage provider."
                )
            )

        return AcceptedUrl(
            url=candidate,
            host=host,
            file_name=file_name or f"import{extension}",
            extension=extension,
            matched_by=matched_by,
        )
