"""Search query expressions and result models.

The Search Query Engine never talks to a search backend in its own query
language.  It builds a small boolean expression tree out of four node types
and hands it to :meth:`ISearchIndex.query`; each index adapter compiles the
tree into whatever its engine understands.

    Term(field, value)       exact match on a keyword field
    Contains(field, text)    full-text match on an analysed field
    And(clauses)             every clause must hold
    Or(clauses)              at least one clause must hold

The hybrid search expression for query ``q`` and tenant ``T`` is::

    And(Term("tenant_id", T), Or(Contains("file_name", q), Contains("content", q)))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from src.models.document import DocumentStatus, SearchIndexEntry


@dataclass(frozen=True)
class Term:
    """Exact equality on a keyword field."""

    field: str
    value: str


@dataclass(frozen=True)
class Contains:
    """Full-text match of *text* against an analysed field.

    Tokenisation and matching (token vs. prefix) are left to the index's
    native analyzer.
    """

    field: str
    text: str


@dataclass(frozen=True)
class And:
    clauses: tuple[QueryExpression, ...]

    def __init__(self, *clauses: QueryExpression) -> None:
        object.__setattr__(self, "clauses", tuple(clauses))


@dataclass(frozen=True)
class Or:
    clauses: tuple[QueryExpression, ...]

    def __init__(self, *clauses: QueryExpression) -> None:
        object.__setattr__(self, "clauses", tuple(clauses))


QueryExpression = Union[Term, Contains, And, Or]


@dataclass(frozen=True)
class SearchHit:
    """One index entry returned by a query, with its native relevance score.

    ``score`` is ``None`` when the query had no full-text predicate, i.e.
    there was nothing to rank against.
    """

    entry: SearchIndexEntry
    score: float | None = None


class SearchResult(BaseModel):
    """A search hit as presented to callers.

    ``content_snippet`` is the first ``snippet_length`` characters of the
    entry's content, with ``"..."`` appended when truncated.  ``score`` is
    absent (``None``) for unranked listings, never zero.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    file_name: str
    file_path: str
    content_type: str
    file_type: str
    file_size: int
    tenant_id: str
    status: DocumentStatus
    uploaded_at: datetime
    indexed_at: datetime | None = None
    content_snippet: str | None = None
    score: float | None = Field(default=None, description="Native relevance; absent when unranked.")
