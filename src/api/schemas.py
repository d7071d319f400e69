"""Pydantic request/response schemas for the document search API.

Defines the public contract for every REST endpoint: upload, document
status, the search family, health, and the structured error body.

# ─── CONVENTIONS ─────────────────────────────────────────────────────
#
# Response bodies are camelCase JSON (``fileName``, ``totalResults``).
# Models subclass ``_CamelModel``, which sets an alias generator; FastAPI
# serialises ``response_model`` objects by alias, and tests can build them
# with snake_case names thanks to ``populate_by_name``.
#
# ``SearchResultResponse.score`` is dropped from the JSON entirely when it
# is ``None`` (unranked listing), so clients can tell "not ranked" from
# "ranked zero".
#
# Errors always use ``ErrorResponse``: {status, error, message, path}.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel

from src.models.document import DocumentRecord
from src.models.search import SearchResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchResultResponse(_CamelModel):
    """One search hit."""

    id: str
    file_name: str
    file_path: str
    content_type: str
    file_type: str
    file_size: int
    tenant_id: str
    status: str
    uploaded_at: datetime
    indexed_at: datetime | None = None
    content_snippet: str | None = None
    score: float | None = None

    @model_serializer(mode="wrap")
    def _omit_missing_score(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        if self.score is None:
            data.pop("score", None)
        return data

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchResultResponse:
        return cls(
            id=result.id,
            file_name=result.file_name,
            file_path=result.file_path,
            content_type=result.content_type,
            file_type=result.file_type,
            file_size=result.file_size,
            tenant_id=result.tenant_id,
            status=result.status.value,
            uploaded_at=result.uploaded_at,
            indexed_at=result.indexed_at,
            content_snippet=result.content_snippet,
            score=result.score,
        )


class SearchResponse(_CamelModel):
    """Envelope returned by every search and listing endpoint."""

    results: list[SearchResultResponse] = Field(default_factory=list)
    total_results: int = 0
    query: str | None = None
    tenant_id: str
    message: str
    search_time_ms: int = Field(ge=0, description="Wall-clock time spent in the query engine")

    @classmethod
    def build(
        cls,
        results: list[SearchResult],
        tenant_id: str,
        query: str | None,
        search_time_ms: int,
    ) -> SearchResponse:
        if results:
            message = f"Found {len(results)} document(s) matching your query"
        else:
            message = "No documents found matching your query"
        return cls(
            results=[SearchResultResponse.from_result(r) for r in results],
            total_results=len(results),
            query=query,
            tenant_id=tenant_id,
            message=message,
            search_time_ms=search_time_ms,
        )


class DocumentUploadResponse(_CamelModel):
    """Returned with 202 once an upload is stored and queued."""

    document_id: int
    file_name: str
    status: str
    uploaded_at: datetime
    message: str = "Document uploaded successfully and queued for indexing"


class DocumentStatusResponse(_CamelModel):
    """Lifecycle state of one document from the metadata store."""

    document_id: int
    file_name: str
    content_type: str
    file_type: str
    file_size: int
    tenant_id: str
    status: str
    uploaded_at: datetime
    indexed_at: datetime | None = None

    @classmethod
    def from_record(cls, record: DocumentRecord) -> DocumentStatusResponse:
        return cls(
            document_id=record.id,
            file_name=record.file_name,
            content_type=record.content_type,
            file_type=record.file_type,
            file_size=record.file_size,
            tenant_id=record.tenant_id,
            status=record.status.value,
            uploaded_at=record.uploaded_at,
            indexed_at=record.indexed_at,
        )


class HealthResponse(_CamelModel):
    """Readiness of the collaborators the API depends on."""

    status: str = "healthy"
    version: str
    metadata_store: str
    search_index: str
    work_queue: str
    indexed_documents: int | None = None


class ErrorResponse(BaseModel):
    """Structured error body shared by every failing endpoint."""

    status: int
    error: str
    message: str
    path: str
