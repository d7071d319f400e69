"""Document lifecycle models shared by intake, the work queue and the worker.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Models (bottom of the dependency graph - no imports from upper layers).
#
# Three shapes describe one uploaded document at three places:
#
#   DocumentRecord    - Metadata Store row.  Lifecycle status + provenance.
#                       Never carries extracted text.
#   IndexMessage      - Work Queue payload.  Just enough to locate the file.
#   SearchIndexEntry  - Search Index document.  Provenance + full ``content``.
#                       Its id is ``str(DocumentRecord.id)`` (1:1, so a
#                       reprocessed document overwrites instead of duplicating).
#
# All models are frozen.  State transitions use ``model_copy(update={...})``.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware 'now' used for every lifecycle timestamp."""
    return datetime.now(tz=timezone.utc)


class DocumentStatus(str, Enum):
    """Lifecycle states of a document.

    UPLOADED → PROCESSING → INDEXED, or PROCESSING → FAILED.  A redelivered
    message moves INDEXED/FAILED back to PROCESSING (reprocessing).
    """

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


class DocumentRecord(BaseModel):
    """A document's metadata row, owned by the Metadata Store."""

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="Assigned by the store at creation; never reused.")
    file_name: str
    file_path: str
    content_type: str = "application/octet-stream"
    file_type: str = "unknown"
    file_size: int = Field(default=0, ge=0)
    tenant_id: str = Field(min_length=1)
    status: DocumentStatus = DocumentStatus.UPLOADED
    uploaded_at: datetime = Field(default_factory=utc_now)
    indexed_at: datetime | None = None

    def entry_id(self) -> str:
        """Identifier of the search index entry derived from this record."""
        return str(self.id)


class IndexMessage(BaseModel):
    """Index-work message carried by the Work Queue.

    Serialised as camelCase JSON::

        {"documentId": 42, "fileName": "report.pdf", "filePath": "/data/...",
         "contentType": "application/pdf", "fileSize": 1024,
         "uploadedAt": "2026-01-05T10:00:00Z"}
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    document_id: int
    file_name: str
    file_path: str
    content_type: str
    file_size: int
    uploaded_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> IndexMessage:
        """Build the message for a persisted record."""
        if record.id is None:
            raise ValueError("Cannot build an index message for an unsaved record")
        return cls(
            document_id=record.id,
            file_name=record.file_name,
            file_path=record.file_path,
            content_type=record.content_type,
            file_size=record.file_size,
            uploaded_at=record.uploaded_at,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str | bytes) -> IndexMessage:
        return cls.model_validate_json(payload)


class SearchIndexEntry(BaseModel):
    """A searchable document, owned by the Search Index.

    ``content`` (the full extracted text) is stored only here.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    file_name: str
    file_path: str
    content_type: str
    file_type: str
    file_size: int
    content: str
    status: DocumentStatus
    uploaded_at: datetime
    indexed_at: datetime | None = None

    @classmethod
    def from_record(cls, record: DocumentRecord, content: str) -> SearchIndexEntry:
        """Mirror a record's descriptive fields and attach the extracted text."""
        return cls(
            id=record.entry_id(),
            tenant_id=record.tenant_id,
            file_name=record.file_name,
            file_path=record.file_path,
            content_type=record.content_type,
            file_type=record.file_type,
            file_size=record.file_size,
            content=content,
            status=record.status,
            uploaded_at=record.uploaded_at,
            indexed_at=record.indexed_at,
        )
