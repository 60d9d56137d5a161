"""Custom exception hierarchy for mediaingest.

All application exceptions inherit from :class:`MediaIngestError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "gemini", "remote-url", "sqlite") caused the failure,
plus a ``user_message`` that is safe to show to the person who started the
upload.

The hierarchy is organized by pipeline phase:

    MediaIngestError  (base -- catch-all for any mediaingest error)
    +-- ValidationError        (bad / oversize / disallowed input, no network call made)
    +-- SourceFetchError       (remote URL could not be downloaded)
    +-- ProviderProtocolError  (provider response is missing a required header/field)
    +-- TransferError          (non-2xx from the provider during init / upload / status)
    +-- ProcessingFailed       (provider reported FAILED while processing the file)
    +-- ProcessingTimeout      (poll budget exhausted while still PROCESSING)
    +-- IngestionCancelled     (caller disconnected mid-job)
    +-- PersistenceError       (metadata store write failed)
    +-- PipelineError          (illegal state transition / emitter misuse)
    +-- ConfigurationError     (startup / missing config)

Every one of these is fatal for the job that raised it.  None of them is
retried inside the pipeline: the decision to restart a whole job belongs to
the caller.
"""


class MediaIngestError(Exception):
    """Base exception for all mediaingest errors.

    Every subclass carries a ``message`` (logged server-side), an optional
    ``provider_name`` and a ``user_message``.  The ``__str__`` method prefixes
    the provider name in brackets for structured log output, e.g.
    ``[gemini] Upload init returned HTTP 403``.
    """

    # Fallback text shown to the end user when the subclass has no
    # better humanised wording.
    default_user_message = "Something went wrong while ingesting the file."

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        self._user_message = user_message
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def user_message(self) -> str:
        """Humanised cause for the terminal ``{error}`` event.

        Never contains a stack trace; falls back to the class default.
        """
        return self._user_message or self.default_user_message

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class ValidationError(MediaIngestError):
    """Raised when input is missing, oversize, or from a disallowed source.

    Raised before any network call is made.  The message itself is already
    written for the end user, so ``user_message`` mirrors it.
    """

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            provider_name=provider_name,
            user_message=user_message or message,
        )


class SourceFetchError(MediaIngestError):
    """Raised when a remote URL cannot be downloaded."""

    default_user_message = (
        "The file could not be downloaded from that URL. "
        "Try using a direct file link."
    )

    def __init__(
        self,
        message: str = "Remote fetch failed",
        provider_name: str | None = "remote-url",
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


# ---------------------------------------------------------------------------
# Provider handshake errors
# ---------------------------------------------------------------------------

class ProviderProtocolError(MediaIngestError):
    """Raised when the provider omits a header or field the protocol requires.

    This is a contract violation, not a transient fault, so it is never
    retried.
    """

    default_user_message = (
        "The processing service returned an unexpected response. Please try again later."
    )

    def __init__(
        self,
        message: str = "Provider response violated the upload protocol",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


class TransferError(MediaIngestError):
    """Raised on a non-2xx (or transport failure) during init, upload or status calls.

    The ``status_code`` is ``None`` when the request never got a response.
    """

    default_user_message = "Uploading the file to the processing service failed. Please retry the upload."

    def __init__(
        self,
        message: str = "Provider transfer failed",
        provider_name: str | None = None,
        user_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Readiness polling errors
# ---------------------------------------------------------------------------

class ProcessingFailed(MediaIngestError):
    """Raised when the provider reports a terminal FAILED state."""

    default_user_message = (
        "The processing service could not process this file. "
        "It may be corrupt or in an unsupported format."
    )

    def __init__(
        self,
        message: str = "Provider processing failed",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


class ProcessingTimeout(MediaIngestError):
    """Raised when the poll budget runs out while the file is still PROCESSING.

    Distinct from :class:`ProcessingFailed`: the remote job may still
    complete after this pipeline gives up, so the user is told to check back.
    """

    default_user_message = (
        "File processing is taking longer than expected. "
        "The file may still complete - check back later."
    )

    def __init__(
        self,
        message: str = "Provider processing timed out",
        provider_name: str | None = None,
        user_message: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)
        self._attempts = attempts

    @property
    def attempts(self) -> int:
        return self._attempts


class IngestionCancelled(MediaIngestError):
    """Raised when the caller disconnects before the job finishes."""

    default_user_message = "The upload was cancelled."

    def __init__(
        self,
        message: str = "Ingestion cancelled by caller",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


# ---------------------------------------------------------------------------
# Persistence / orchestration / configuration errors
# ---------------------------------------------------------------------------

class PersistenceError(MediaIngestError):
    """Raised when the metadata store cannot record a finished job."""

    default_user_message = (
        "The file was processed but its details could not be saved. Please retry."
    )

    def __init__(
        self,
        message: str = "Metadata persistence failed",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


class PipelineError(MediaIngestError):
    """Raised on an illegal job state transition or event-stream misuse."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)


class ConfigurationError(MediaIngestError):
    """Raised when configuration is invalid or missing."""

    default_user_message = "The ingestion service is not configured correctly."

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, user_message=user_message)
