"""Tenant-scoped hybrid search over the search index.

Every operation takes a mandatory tenant id and composes it as an exact-match
clause ANDed with whatever else the caller asked for, so a query can never
reach another tenant's entries.  The hybrid query for a non-blank ``q`` is::

    And(Term("tenant_id", T), Or(Contains("file_name", q), Contains("content", q)))

Ranked results carry the index's native relevance score.  Unranked listings
(blank query, exact-match filters only) carry no score at all, which keeps
"not ranked" distinguishable from "ranked zero".
"""

from __future__ import annotations

import structlog

from src.interfaces.search_index import ISearchIndex
from src.models.search import (
    And,
    Contains,
    Or,
    QueryExpression,
    SearchHit,
    SearchResult,
    Term,
)
from src.utils.errors import ClientValidationError, DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_ELLIPSIS = "..."


def build_snippet(content: str | None, length: int = 200) -> str | None:
    """Return the first *length* characters of *content*.

    ``"..."`` is appended only when something was cut off.  The snippet is
    positional; it is not centred on the matched terms.  ``None`` content
    gives a ``None`` snippet.
    """
    if content is None:
        return None
    if len(content) <= length:
        return content
    return content[:length] + _ELLIPSIS


class SearchQueryEngine:
    """Builds tenant-scoped queries, runs them, and maps hits to results.

    Parameters
    ----------
    search_index:
        Index to query.
    snippet_length:
        Characters of content kept in ``content_snippet``.
    max_query_length:
        Longest accepted free-text query.
    default_max_results:
        Cap for ranked queries when the caller does not pass one.
    """

    def __init__(
        self,
        search_index: ISearchIndex,
        snippet_length: int = 200,
        max_query_length: int = 500,
        default_max_results: int = 100,
    ) -> None:
        self._index = search_index
        self._snippet_length = snippet_length
        self._max_query_length = max_query_length
        self._default_max_results = default_max_results

    # ------------------------------------------------------------------
    # Free-text search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str | None,
        tenant_id: str,
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """Hybrid filename + content search for one tenant.

        A blank *query* returns every document of the tenant, unscored, in
        insertion order.
        """
        tenant = _require_tenant(tenant_id)
        text = (query or "").strip()
        if not text:
            return await self.list_documents(tenant, max_results=max_results)
        self._check_query_length(text)

        expression = And(
            Term("tenant_id", tenant),
            Or(Contains("file_name", text), Contains("content", text)),
        )
        return await self._run(expression, tenant, max_results or self._default_max_results)

    async def search_by_file_name(
        self, file_name: str, tenant_id: str, max_results: int | None = None
    ) -> list[SearchResult]:
        tenant = _require_tenant(tenant_id)
        text = _require_value(file_name, "File name")
        self._check_query_length(text)
        expression = And(Term("tenant_id", tenant), Contains("file_name", text))
        return await self._run(expression, tenant, max_results or self._default_max_results)

    async def search_by_content(
        self, text: str, tenant_id: str, max_results: int | None = None
    ) -> list[SearchResult]:
        tenant = _require_tenant(tenant_id)
        value = _require_value(text, "Search text")
        self._check_query_length(value)
        expression = And(Term("tenant_id", tenant), Contains("content", value))
        return await self._run(expression, tenant, max_results or self._default_max_results)

    # ------------------------------------------------------------------
    # Exact-match listings
    # ------------------------------------------------------------------

    async def search_by_content_type(
        self, content_type: str, tenant_id: str, max_results: int | None = None
    ) -> list[SearchResult]:
        tenant = _require_tenant(tenant_id)
        value = _require_value(content_type, "Content type")
        expression = And(Term("tenant_id", tenant), Term("content_type", value))
        return await self._run(expression, tenant, max_results)

    async def search_by_file_type(
        self, file_type: str, tenant_id: str, max_results: int | None = None
    ) -> list[SearchResult]:
        tenant = _require_tenant(tenant_id)
        value = _require_value(file_type, "File type").lower().lstrip(".")
        expression = And(Term("tenant_id", tenant), Term("file_type", value))
        return await self._run(expression, tenant, max_results)

    async def list_documents(
        self, tenant_id: str, max_results: int | None = None
    ) -> list[SearchResult]:
        """Every indexed document of the tenant, unscored, insertion order."""
        tenant = _require_tenant(tenant_id)
        entries = await self._index.find_by_tenant(tenant, limit=max_results)
        return [self._to_result(SearchHit(entry=e)) for e in entries if e.tenant_id == tenant]

    async def advanced_search(
        self,
        tenant_id: str,
        file_name: str | None = None,
        content: str | None = None,
        content_type: str | None = None,
        file_type: str | None = None,
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """Tenant filter ANDed with each supplied criterion.

        Omitted (or blank) criteria are not applied.  Results are ranked
        when a file name or content criterion is present.
        """
        tenant = _require_tenant(tenant_id)
        clauses: list[QueryExpression] = [Term("tenant_id", tenant)]
        ranked = False

        if file_name and file_name.strip():
            self._check_query_length(file_name.strip())
            clauses.append(Contains("file_name", file_name.strip()))
            ranked = True
        if content and content.strip():
            self._check_query_length(content.strip())
            clauses.append(Contains("content", content.strip()))
            ranked = True
        if content_type and content_type.strip():
            clauses.append(Term("content_type", content_type.strip()))
        if file_type and file_type.strip():
            clauses.append(Term("file_type", file_type.strip().lower().lstrip(".")))

        limit = max_results or (self._default_max_results if ranked else None)
        return await self._run(And(*clauses), tenant, limit)

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    async def get_document(self, document_id: int | str, tenant_id: str) -> SearchResult:
        """Return one indexed document.

        Raises
        ------
        DocumentNotFoundError
            If the entry does not exist or belongs to another tenant.  Both
            cases produce the same error so existence never leaks.
        """
        tenant = _require_tenant(tenant_id)
        entry = await self._index.find_by_id(str(document_id))
        if entry is None or entry.tenant_id != tenant:
            logger.info("document_lookup_miss", document_id=str(document_id), tenant_id=tenant)
            raise DocumentNotFoundError(f"Document not found with id: {document_id}")
        return self._to_result(SearchHit(entry=entry))

    async def delete_document(self, document_id: int | str, tenant_id: str) -> None:
        """Remove a document's index entry when *tenant_id* owns it.

        The index remembers the removal, so the consistency sweep does not
        requeue the still-INDEXED record.
        """
        await self.get_document(document_id, tenant_id)
        await self._index.delete(str(document_id))
        logger.info("document_index_entry_removed", document_id=str(document_id), tenant_id=tenant_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self, expression: QueryExpression, tenant: str, limit: int | None
    ) -> list[SearchResult]:
        hits = await self._index.query(expression, limit=limit)
        results = [self._to_result(h) for h in hits if h.entry.tenant_id == tenant]
        logger.debug("search_executed", tenant_id=tenant, hits=len(results))
        return results

    def _to_result(self, hit: SearchHit) -> SearchResult:
        entry = hit.entry
        return SearchResult(
            id=entry.id,
            file_name=entry.file_name,
            file_path=entry.file_path,
            content_type=entry.content_type,
            file_type=entry.file_type,
            file_size=entry.file_size,
            tenant_id=entry.tenant_id,
            status=entry.status,
            uploaded_at=entry.uploaded_at,
            indexed_at=entry.indexed_at,
            content_snippet=build_snippet(entry.content, self._snippet_length),
            score=hit.score,
        )

    def _check_query_length(self, text: str) -> None:
        if len(text) > self._max_query_length:
            raise ClientValidationError(
                f"Search query exceeds maximum length of {self._max_query_length} characters"
            )


def _require_tenant(tenant_id: str | None) -> str:
    if tenant_id is None or not tenant_id.strip():
        raise ClientValidationError("Tenant ID is required")
    return tenant_id.strip()


def _require_value(value: str | None, label: str) -> str:
    if value is None or not value.strip():
        raise ClientValidationError(f"{label} is required")
    return value.strip()
