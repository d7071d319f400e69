"""Abstract base class for the full-text search index.

The search index is an inverted document store supporting per-tenant
filtering, full-text matching on ``file_name`` and ``content``, and native
relevance scoring.  Implementations may wrap SQLite FTS5, Elasticsearch,
OpenSearch, or Meilisearch.

Queries are expressed with the boolean expression types in
:mod:`src.models.search`; each adapter compiles them into its own query
language.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import SearchIndexEntry
from src.models.search import QueryExpression, SearchHit


# Concrete implementation: SQLiteSearchIndex (src/providers/search_index/)
class ISearchIndex(ABC):
    """Contract for search index storage and querying.

    Failures of the backend surface as
    :class:`~src.utils.errors.SearchIndexError`.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create the index from its static field mapping if it doesn't exist."""

    @abstractmethod
    async def save(self, entry: SearchIndexEntry) -> None:
        """Insert or overwrite the entry with ``entry.id``."""

    @abstractmethod
    async def find_by_id(self, entry_id: str) -> SearchIndexEntry | None:
        """Return the entry with *entry_id*, or ``None``."""

    @abstractmethod
    async def find_by_tenant(
        self,
        tenant_id: str,
        limit: int | None = None,
    ) -> list[SearchIndexEntry]:
        """Return the tenant's entries in natural (insertion) order."""

    @abstractmethod
    async def query(
        self,
        expression: QueryExpression,
        limit: int | None = None,
    ) -> list[SearchHit]:
        """Evaluate *expression* and return matching entries.

        When the expression contains full-text predicates, hits are ordered
        by descending relevance and carry a score; otherwise they are in
        natural order with ``score=None``.

        Raises
        ------
        src.utils.errors.UnsupportedQueryError
            If the expression cannot be compiled by this backend.
        """

    @abstractmethod
    async def delete(self, entry_id: str) -> bool:
        """Remove the entry; return ``True`` if something was deleted.

        A removed entry is remembered (see :meth:`was_deleted`) until the
        same id is saved again.
        """

    @abstractmethod
    async def was_deleted(self, entry_id: str) -> bool:
        """Return ``True`` if the entry was removed and not saved since."""

    @abstractmethod
    async def count(self, tenant_id: str | None = None) -> int:
        """Return the number of entries, optionally for one tenant."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
