"""SQLite-backed document metadata store.

Persists one lifecycle row per uploaded document to a local SQLite database
(``data/metadata.db`` by default).  Uses ``aiosqlite`` for async I/O.  The
extracted text is never stored here; it lives only in the search index.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.models.document import DocumentRecord, DocumentStatus
from src.utils.errors import MetadataStoreError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/metadata.db")
_PROVIDER = "sqlite_metadata"

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    file_name     TEXT    NOT NULL,
    file_path     TEXT    NOT NULL,
    content_type  TEXT    NOT NULL,
    file_type     TEXT    NOT NULL,
    file_size     INTEGER NOT NULL,
    tenant_id     TEXT    NOT NULL,
    status        TEXT    NOT NULL,
    uploaded_at   TEXT    NOT NULL,
    indexed_at    TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_tenant ON documents(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
]

_INSERT_SQL = """\
INSERT INTO documents
    (file_name, file_path, content_type, file_type, file_size,
     tenant_id, status, uploaded_at, indexed_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

# provenance columns and tenant_id are immutable after creation
_UPDATE_SQL = """\
UPDATE documents
SET status = ?, indexed_at = ?
WHERE id = ?;
"""

_SELECT_COLUMNS = (
    "id, file_name, file_path, content_type, file_type, file_size, "
    "tenant_id, status, uploaded_at, indexed_at"
)


class SQLiteMetadataStore(IMetadataStore):
    """SQLite-backed document lifecycle persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the documents table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                f"Failed to initialise metadata store: {exc}", provider_name=_PROVIDER
            ) from exc
        logger.info("metadata_db_initialized", path=str(self._db_path))

    async def create(self, record: DocumentRecord) -> DocumentRecord:
        """Insert *record* and return it with the assigned id."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    _INSERT_SQL,
                    (
                        record.file_name,
                        record.file_path,
                        record.content_type,
                        record.file_type,
                        record.file_size,
                        record.tenant_id,
                        record.status.value,
                        record.uploaded_at.isoformat(),
                        record.indexed_at.isoformat() if record.indexed_at else None,
                    ),
                )
                await db.commit()
                new_id = cursor.lastrowid
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                f"Failed to create document record: {exc}", provider_name=_PROVIDER
            ) from exc

        created = record.model_copy(update={"id": new_id})
        logger.info(
            "document_record_created",
            document_id=new_id,
            tenant_id=record.tenant_id,
            file_name=record.file_name,
        )
        return created

    async def get(self, document_id: int) -> DocumentRecord | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM documents WHERE id = ?",
                    (document_id,),
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                f"Failed to read document {document_id}: {exc}", provider_name=_PROVIDER
            ) from exc

        if row is None:
            return None
        return self._row_to_record(dict(row))

    async def save(self, record: DocumentRecord) -> DocumentRecord:
        """Persist the mutable lifecycle fields (status, indexed_at)."""
        if record.id is None:
            raise MetadataStoreError("Cannot save a record without an id", provider_name=_PROVIDER)

        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    _UPDATE_SQL,
                    (
                        record.status.value,
                        record.indexed_at.isoformat() if record.indexed_at else None,
                        record.id,
                    ),
                )
                await db.commit()
                updated = cursor.rowcount
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                f"Failed to save document {record.id}: {exc}", provider_name=_PROVIDER
            ) from exc

        if updated == 0:
            raise MetadataStoreError(
                f"No document record with id {record.id}", provider_name=_PROVIDER
            )
        logger.debug("document_record_saved", document_id=record.id, status=record.status.value)
        return record

    async def list_by_status(
        self,
        status: DocumentStatus,
        limit: int = 500,
        after_id: int = 0,
    ) -> list[DocumentRecord]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"SELECT {_SELECT_COLUMNS} FROM documents "
                    "WHERE status = ? AND id > ? ORDER BY id LIMIT ?",
                    (status.value, after_id, limit),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise MetadataStoreError(
                f"Failed to list {status.value} documents: {exc}", provider_name=_PROVIDER
            ) from exc
        return [self._row_to_record(dict(r)) for r in rows]

    def get_provider_name(self) -> str:
        return _PROVIDER

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> DocumentRecord:
        return DocumentRecord(
            id=row["id"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            content_type=row["content_type"],
            file_type=row["file_type"],
            file_size=row["file_size"],
            tenant_id=row["tenant_id"],
            status=DocumentStatus(row["status"]),
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
            indexed_at=datetime.fromisoformat(row["indexed_at"]) if row["indexed_at"] else None,
        )
