"""FastAPI routes for document intake and tenant-scoped search.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ───────────────────────────────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/documents                        POST    Upload → store → queue for indexing
# /api/documents/{id}?tenant=           GET     Lifecycle status of one document
# /api/search?q=&tenant=                GET     Hybrid filename + content search
# /api/search/all?tenant=               GET     Every document of the tenant
# /api/search/filename?name=&tenant=    GET     Filename search
# /api/search/content?text=&tenant=     GET     Content search
# /api/search/type?contentType=&tenant= GET     Exact content-type filter
# /api/search/filetype?fileType=&tenant= GET    Exact file-type filter
# /api/search/advanced?...&tenant=      GET     Any combination of the above
# /api/search/document/{id}?tenant=     GET     Point lookup
# /api/search/document/{id}?tenant=     DELETE  Remove the index entry
# /api/health                           GET     Collaborator readiness
#
# Every endpoint requires ``tenant`` (``tenantId`` form field on upload);
# a missing or blank tenant is a 400, never "all tenants".  Errors are
# rendered by the handlers in middleware.py.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
from typing import Annotated, Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile

from src.api.schemas import (
    DocumentStatusResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
    SearchResponse,
    SearchResultResponse,
)
from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.search_index import ISearchIndex
from src.interfaces.work_queue import IWorkQueue
from src.models.search import SearchResult
from src.services.intake_service import DocumentIntakeService
from src.services.search_service import SearchQueryEngine
from src.utils.errors import ClientValidationError, StoreError

logger = structlog.get_logger(logger_name=__name__)

router = APIRouter(prefix="/api")

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Dependencies (read from app.state, populated in main.py's _lifespan)
# ---------------------------------------------------------------------------


def _get_search_engine(request: Request) -> SearchQueryEngine:
    return request.app.state.search_engine


def _get_intake_service(request: Request) -> DocumentIntakeService:
    return request.app.state.intake_service


def _get_metadata_store(request: Request) -> IMetadataStore:
    return request.app.state.metadata_store


def _get_search_index(request: Request) -> ISearchIndex:
    return request.app.state.search_index


def _get_work_queue(request: Request) -> IWorkQueue:
    return request.app.state.work_queue


SearchEngineDep = Annotated[SearchQueryEngine, Depends(_get_search_engine)]
IntakeDep = Annotated[DocumentIntakeService, Depends(_get_intake_service)]
MetadataStoreDep = Annotated[IMetadataStore, Depends(_get_metadata_store)]
SearchIndexDep = Annotated[ISearchIndex, Depends(_get_search_index)]
WorkQueueDep = Annotated[IWorkQueue, Depends(_get_work_queue)]

TenantParam = Annotated[str | None, Query(description="Tenant the request is scoped to")]


def _require_tenant(tenant: str | None) -> str:
    if tenant is None or not tenant.strip():
        raise ClientValidationError("Tenant ID is required. Please provide 'tenant' parameter.")
    return tenant.strip()


async def _timed_search(
    run: Callable[[], Awaitable[list[SearchResult]]],
    tenant: str,
    query: str | None,
) -> SearchResponse:
    start = time.perf_counter()
    results = await run()
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        "search_completed",
        tenant_id=tenant,
        query=query,
        results=len(results),
        duration_ms=elapsed_ms,
    )
    return SearchResponse.build(results, tenant, query, elapsed_ms)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=DocumentUploadResponse,
    status_code=202,
    responses={**_ERRORS, 413: {"model": ErrorResponse}},
    summary="Upload a document and queue it for indexing",
)
async def upload_document(
    intake: IntakeDep,
    file: Annotated[UploadFile, File(description="Document to index")],
    tenant_id: Annotated[str | None, Form(alias="tenantId")] = None,
) -> DocumentUploadResponse:
    data = await file.read()
    logger.info(
        "document_upload_received",
        file_name=file.filename,
        size=len(data),
        tenant_id=tenant_id,
    )
    record = await intake.upload(file.filename, file.content_type, data, tenant_id)
    return DocumentUploadResponse(
        document_id=record.id,
        file_name=record.file_name,
        status=record.status.value,
        uploaded_at=record.uploaded_at,
    )


@router.get(
    "/documents/{document_id}",
    response_model=DocumentStatusResponse,
    responses=_ERRORS,
    summary="Get a document's lifecycle status",
)
async def get_document_status(
    document_id: int,
    intake: IntakeDep,
    tenant: TenantParam = None,
) -> DocumentStatusResponse:
    record = await intake.get_status(document_id, _require_tenant(tenant))
    return DocumentStatusResponse.from_record(record)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.get(
    "/search",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Hybrid search across file names and content",
)
async def search(
    engine: SearchEngineDep,
    q: Annotated[str | None, Query(description="Search text")] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    if q is None or not q.strip():
        raise ClientValidationError("Search query 'q' is required and cannot be empty.")
    return await _timed_search(lambda: engine.search(q, tenant_id), tenant_id, q)


@router.get(
    "/search/all",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="List every indexed document of the tenant",
)
async def list_documents(engine: SearchEngineDep, tenant: TenantParam = None) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(lambda: engine.list_documents(tenant_id), tenant_id, None)


@router.get(
    "/search/filename",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Search file names",
)
async def search_by_file_name(
    engine: SearchEngineDep,
    name: Annotated[str | None, Query()] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(
        lambda: engine.search_by_file_name(name, tenant_id), tenant_id, name
    )


@router.get(
    "/search/content",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Search document content",
)
async def search_by_content(
    engine: SearchEngineDep,
    text: Annotated[str | None, Query()] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(lambda: engine.search_by_content(text, tenant_id), tenant_id, text)


@router.get(
    "/search/type",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Filter by MIME content type",
)
async def search_by_content_type(
    engine: SearchEngineDep,
    content_type: Annotated[str | None, Query(alias="contentType")] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(
        lambda: engine.search_by_content_type(content_type, tenant_id), tenant_id, content_type
    )


@router.get(
    "/search/filetype",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Filter by file extension",
)
async def search_by_file_type(
    engine: SearchEngineDep,
    file_type: Annotated[str | None, Query(alias="fileType")] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(
        lambda: engine.search_by_file_type(file_type, tenant_id), tenant_id, file_type
    )


@router.get(
    "/search/advanced",
    response_model=SearchResponse,
    responses=_ERRORS,
    summary="Combine file name, content, content type and file type criteria",
)
async def advanced_search(
    engine: SearchEngineDep,
    file_name: Annotated[str | None, Query(alias="fileName")] = None,
    content: Annotated[str | None, Query()] = None,
    content_type: Annotated[str | None, Query(alias="contentType")] = None,
    file_type: Annotated[str | None, Query(alias="fileType")] = None,
    tenant: TenantParam = None,
) -> SearchResponse:
    tenant_id = _require_tenant(tenant)
    return await _timed_search(
        lambda: engine.advanced_search(
            tenant_id,
            file_name=file_name,
            content=content,
            content_type=content_type,
            file_type=file_type,
        ),
        tenant_id,
        " ".join(p for p in (file_name, content) if p) or None,
    )


@router.get(
    "/search/document/{document_id}",
    response_model=SearchResultResponse,
    responses=_ERRORS,
    summary="Fetch one indexed document",
)
async def get_indexed_document(
    document_id: int,
    engine: SearchEngineDep,
    tenant: TenantParam = None,
) -> SearchResultResponse:
    result = await engine.get_document(document_id, _require_tenant(tenant))
    return SearchResultResponse.from_result(result)


@router.delete(
    "/search/document/{document_id}",
    status_code=204,
    responses=_ERRORS,
    summary="Remove a document from the search index",
)
async def delete_indexed_document(
    document_id: int,
    engine: SearchEngineDep,
    tenant: TenantParam = None,
) -> Response:
    await engine.delete_document(document_id, _require_tenant(tenant))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health(
    request: Request,
    metadata_store: MetadataStoreDep,
    search_index: SearchIndexDep,
    work_queue: WorkQueueDep,
) -> HealthResponse:
    status = "healthy"
    indexed: int | None = None
    try:
        indexed = await search_index.count()
    except StoreError as exc:
        logger.warning("health_search_index_unavailable", error=str(exc))
        status = "degraded"
    return HealthResponse(
        status=status,
        version=request.app.version,
        metadata_store=metadata_store.get_provider_name(),
        search_index=search_index.get_provider_name(),
        work_queue=work_queue.get_provider_name(),
        indexed_documents=indexed,
    )
