"""Abstract base class for the document metadata store.

Defines the narrow read/write contract the core needs from the relational
store that owns each document's lifecycle row.  Implementations may use
SQLite (local), PostgreSQL, MySQL, or any key-value backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.document import DocumentRecord, DocumentStatus


# Concrete implementation: SQLiteMetadataStore (src/providers/metadata/)
class IMetadataStore(ABC):
    """Contract for document metadata persistence.

    All operations are async to support network-backed stores.  Failures of
    the backend surface as :class:`~src.utils.errors.MetadataStoreError`.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    async def create(self, record: DocumentRecord) -> DocumentRecord:
        """Insert a new record and return it with its assigned ``id``.

        Any ``id`` already present on *record* is ignored.
        """

    @abstractmethod
    async def get(self, document_id: int) -> DocumentRecord | None:
        """Return the record with *document_id*, or ``None`` if absent."""

    @abstractmethod
    async def save(self, record: DocumentRecord) -> DocumentRecord:
        """Persist *record* (which must carry an ``id``) and return it.

        Raises
        ------
        src.utils.errors.MetadataStoreError
            If the write fails or no row with that id exists.
        """

    @abstractmethod
    async def list_by_status(
        self,
        status: DocumentStatus,
        limit: int = 500,
        after_id: int = 0,
    ) -> list[DocumentRecord]:
        """Return up to *limit* records in *status* with ``id > after_id``,
        ordered by id (keyset pagination for the consistency sweep)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
