"""Document intake: store the upload, record it, queue it for indexing.

    upload ─► validate ─► write <uuid>_<name> to storage_dir
                       ─► metadata store create (status=UPLOADED)
                       ─► IngestionPublisher.publish

A publish failure propagates to the caller as a 500; the record stays
UPLOADED and is never enqueued.
"""

from __future__ import annotations

import uuid
from pathlib import Path

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.models.document import DocumentRecord, DocumentStatus, utc_now
from src.services.ingestion_publisher import IngestionPublisher
from src.utils.concurrency import run_blocking
from src.utils.errors import (
    ClientValidationError,
    DocumentNotFoundError,
    PayloadTooLargeError,
    StoreError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def file_type_for(file_name: str | None) -> str:
    """Lower-cased extension of *file_name*, or ``"unknown"``.

    A leading dot (``.bashrc``) or trailing dot does not count as an
    extension.
    """
    if not file_name:
        return "unknown"
    dot = file_name.rfind(".")
    if 0 < dot < len(file_name) - 1:
        return file_name[dot + 1:].lower()
    return "unknown"


class DocumentIntakeService:
    """Accepts uploads and hands them to the indexing pipeline.

    Parameters
    ----------
    metadata_store:
        Where the document's lifecycle record is created.
    publisher:
        Queues the index-work message once the record exists.
    storage_dir:
        Directory the raw bytes are written to.
    max_upload_bytes:
        Uploads larger than this are rejected with 413.
    """

    def __init__(
        self,
        metadata_store: IMetadataStore,
        publisher: IngestionPublisher,
        storage_dir: str | Path,
        max_upload_bytes: int = 50 * 1024 * 1024,
    ) -> None:
        self._store = metadata_store
        self._publisher = publisher
        self._storage_dir = Path(storage_dir)
        self._max_upload_bytes = max_upload_bytes

    async def upload(
        self,
        file_name: str | None,
        content_type: str | None,
        data: bytes,
        tenant_id: str | None,
    ) -> DocumentRecord:
        """Persist an upload and queue it; return the UPLOADED record."""
        if not data:
            raise ClientValidationError("File is required and cannot be empty")
        if len(data) > self._max_upload_bytes:
            logger.warning("upload_too_large", size=len(data), tenant_id=tenant_id)
            raise PayloadTooLargeError(
                "File size exceeds maximum allowed size of "
                f"{self._max_upload_bytes // (1024 * 1024)}MB"
            )
        # drop any client-supplied directory components
        name = Path(file_name).name.strip() if file_name else ""
        if not name:
            raise ClientValidationError("File must have a valid filename")
        if tenant_id is None or not tenant_id.strip():
            raise ClientValidationError("Tenant ID is required")
        tenant = tenant_id.strip()

        stored_path = await run_blocking(self._write_file, name, data)
        logger.info("upload_stored", path=str(stored_path), size=len(data), tenant_id=tenant)

        record = await self._store.create(
            DocumentRecord(
                file_name=name,
                file_path=str(stored_path),
                content_type=content_type or _DEFAULT_CONTENT_TYPE,
                file_type=file_type_for(name),
                file_size=len(data),
                tenant_id=tenant,
                status=DocumentStatus.UPLOADED,
                uploaded_at=utc_now(),
            )
        )
        await self._publisher.publish(record)
        return record

    async def get_status(self, document_id: int, tenant_id: str | None) -> DocumentRecord:
        """Return the record when *tenant_id* owns it, else DocumentNotFoundError."""
        if tenant_id is None or not tenant_id.strip():
            raise ClientValidationError("Tenant ID is required")
        record = await self._store.get(document_id)
        if record is None or record.tenant_id != tenant_id.strip():
            raise DocumentNotFoundError(f"Document not found with id: {document_id}")
        return record

    def _write_file(self, name: str, data: bytes) -> Path:
        try:
            self._storage_dir.mkdir(parents=True, exist_ok=True)
            path = (self._storage_dir / f"{uuid.uuid4()}_{name}").resolve()
            path.write_bytes(data)
        except OSError as exc:
            raise StoreError(f"Failed to store file: {exc}", provider_name="file_storage") from exc
        return path
