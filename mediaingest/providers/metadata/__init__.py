"""Metadata store adapters."""

from mediaingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

__all__ = ["SQLiteMetadataStore"]
