"""Public interface definitions for the pipeline's external collaborators.

Every external service is reached through one of the abstract base classes
in this package; concrete adapters are injected at startup in
``mediaingest/main.py``, and unit tests inject mocks built with
``MagicMock(spec=...)``.

CONCRETE IMPLEMENTATION MAP:
    Interface          →  Concrete implementations
    ───────────────────────────────────────────────────────────────
    IFileAPIProvider   →  GeminiFileAPIProvider (providers/file_api/)
    IMetadataStore     →  SQLiteMetadataStore   (providers/metadata/)
    ByteSource         →  ServerBufferSource, RemoteFetchSource,
                          BrowserDirectSource   (pipeline/byte_sources.py)
"""

from mediaingest.interfaces.byte_source import ByteSource, ProgressCallback, SourcePayload
from mediaingest.interfaces.file_api_provider import IFileAPIProvider
from mediaingest.interfaces.metadata_store import IMetadataStore

__all__ = [
    "ByteSource",
    "IFileAPIProvider",
    "IMetadataStore",
    "ProgressCallback",
    "SourcePayload",
]
