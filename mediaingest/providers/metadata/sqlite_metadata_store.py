"""SQLite-backed metadata store.

Persists one row per file that reached READY to a local SQLite database at
``data/files.db``.  Uses ``aiosqlite`` for async I/O.  Writes are keyed by
the job id with ``ON CONFLICT DO NOTHING``, so a retried save for the same
job is a no-op that returns the row already stored.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from mediaingest.interfaces.metadata_store import IMetadataStore
from mediaingest.models.ingestion import PersistedFileRecord
from mediaingest.utils.errors import PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/files.db")

_COLUMNS = (
    "id, tenant_id, title, file_name, mime_type, category, size, source_mode, "
    "source_url, provider_file_name, provider_uri, status, started_at, created_at"
)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS files (
    id                  TEXT    PRIMARY KEY,
    tenant_id           TEXT    NOT NULL,
    title               TEXT    NOT NULL,
    file_name           TEXT    NOT NULL,
    mime_type           TEXT    NOT NULL,
    category            TEXT    NOT NULL,
    size                INTEGER NOT NULL,
    source_mode         TEXT    NOT NULL,
    source_url          TEXT,
    provider_file_name  TEXT    NOT NULL,
    provider_uri        TEXT    NOT NULL,
    status              TEXT    NOT NULL DEFAULT 'ready',
    started_at          TEXT    NOT NULL,
    created_at          TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_files_tenant ON files(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_files_tenant_created ON files(tenant_id, created_at);",
]

_INSERT_SQL = f"""\
INSERT INTO files ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO NOTHING;
"""

_SELECT_BY_ID_SQL = f"SELECT {_COLUMNS} FROM files WHERE id = ?;"


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed persistence for finished-file records."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the files table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("metadata_db_initialized", path=str(self._db_path))

    async def save_file(self, record: PersistedFileRecord) -> PersistedFileRecord:
        """Insert *record* unless its id exists; return the stored row."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(_INSERT_SQL, _to_row(record))
                inserted = cursor.rowcount == 1
                await db.commit()
                cursor = await db.execute(_SELECT_BY_ID_SQL, (record.id,))
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Failed to save file {record.id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if row is None:
            raise PersistenceError(
                message=f"File {record.id} missing after insert",
                provider_name=self.get_provider_name(),
            )

        stored = _from_row(row)
        logger.info(
            "file_record_saved" if inserted else "file_record_exists",
            file_id=record.id,
            tenant_id=record.tenant_id,
            provider_file_name=stored.provider_file_name,
        )
        return stored

    async def get_file(self, tenant_id: str, file_id: str) -> PersistedFileRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM files WHERE id = ? AND tenant_id = ?",
                (file_id, tenant_id),
            )
            row = await cursor.fetchone()
        return _from_row(row) if row is not None else None

    async def list_files(self, tenant_id: str, limit: int = 100) -> list[PersistedFileRecord]:
        """Return the tenant's records, newest first."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM files WHERE tenant_id = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (tenant_id, limit),
            )
            rows = await cursor.fetchall()
        return [_from_row(r) for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite_metadata"


def _to_row(record: PersistedFileRecord) -> tuple[Any, ...]:
    return (
        record.id,
        record.tenant_id,
        record.title,
        record.file_name,
        record.mime_type,
        record.category.value,
        record.size,
        record.source_mode.value,
        record.source_url,
        record.provider_file_name,
        record.provider_uri,
        record.status,
        record.started_at.isoformat(),
        record.created_at.isoformat(),
    )


def _from_row(row: aiosqlite.Row) -> PersistedFileRecord:
    # Pydantic parses the enum values and ISO timestamps back.
    return PersistedFileRecord.model_validate(dict(row))
