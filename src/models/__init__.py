"""Domain models - re-exports all public model classes.

    - document.py - Document lifecycle (record, queue message, index entry)
    - search.py   - Boolean query expressions, search hits and results
"""

from __future__ import annotations

from src.models.document import (
    DocumentRecord,
    DocumentStatus,
    IndexMessage,
    SearchIndexEntry,
    utc_now,
)
from src.models.search import (
    And,
    Contains,
    Or,
    QueryExpression,
    SearchHit,
    SearchResult,
    Term,
)

__all__ = [
    "And",
    "Contains",
    "DocumentRecord",
    "DocumentStatus",
    "IndexMessage",
    "Or",
    "QueryExpression",
    "SearchHit",
    "SearchIndexEntry",
    "SearchResult",
    "Term",
    "utc_now",
]
