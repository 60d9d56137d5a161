"""Abstract base class for the durable file-metadata store.

The store is an external collaborator of the ingestion pipeline: the only
write it receives is one :meth:`IMetadataStore.save_file` per job that
reached READY.  Implementations may use SQLite (local), PostgreSQL, a KV
service, or anything else that can upsert by key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from mediaingest.models.ingestion import PersistedFileRecord


# Concrete implementation: SQLiteMetadataStore (mediaingest/providers/metadata/)
class IMetadataStore(ABC):
    """Contract for persisting and reading finished-file records.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backing storage (create tables, open pools)."""

    @abstractmethod
    async def save_file(self, record: PersistedFileRecord) -> PersistedFileRecord:
        """Persist *record*, idempotent by ``record.id``.

        Saving a record whose id already exists leaves the stored row
        untouched and returns it.

        Raises
        ------
        mediaingest.utils.errors.PersistenceError
            If the write fails.
        """

    @abstractmethod
    async def get_file(self, tenant_id: str, file_id: str) -> PersistedFileRecord | None:
        """Return the tenant's record *file_id*, or ``None``."""

    @abstractmethod
    async def list_files(self, tenant_id: str, limit: int = 100) -> list[PersistedFileRecord]:
        """Return the tenant's records, newest first."""
