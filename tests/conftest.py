"""Shared pytest fixtures for the document search test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from src.interfaces.text_extractor import ITextExtractor
from src.models.document import DocumentRecord, DocumentStatus, SearchIndexEntry
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.providers.queue.memory_queue import InMemoryWorkQueue
from src.providers.search_index.sqlite_search_index import SQLiteSearchIndex

UPLOADED_AT = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record() -> Callable[..., DocumentRecord]:
    """Factory for DocumentRecord with report.pdf / acme defaults."""

    def _make(**overrides: Any) -> DocumentRecord:
        fields: dict[str, Any] = {
            "id": 1,
            "file_name": "report.pdf",
            "file_path": "/data/report.pdf",
            "content_type": "application/pdf",
            "file_type": "pdf",
            "file_size": 1024,
            "tenant_id": "acme",
            "status": DocumentStatus.UPLOADED,
            "uploaded_at": UPLOADED_AT,
        }
        fields.update(overrides)
        return DocumentRecord(**fields)

    return _make


@pytest.fixture
def make_entry() -> Callable[..., SearchIndexEntry]:
    """Factory for SearchIndexEntry; ``id`` defaults to "1"."""

    def _make(**overrides: Any) -> SearchIndexEntry:
        fields: dict[str, Any] = {
            "id": "1",
            "tenant_id": "acme",
            "file_name": "report.pdf",
            "file_path": "/data/report.pdf",
            "content_type": "application/pdf",
            "file_type": "pdf",
            "file_size": 1024,
            "content": "Quarterly report for the acme board.",
            "status": DocumentStatus.INDEXED,
            "uploaded_at": UPLOADED_AT,
            "indexed_at": UPLOADED_AT,
        }
        fields.update(overrides)
        return SearchIndexEntry(**fields)

    return _make


# ---------------------------------------------------------------------------
# Real adapters on temporary storage
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def metadata_store(tmp_path: Path) -> SQLiteMetadataStore:
    """Initialised metadata store on a temp DB."""
    store = SQLiteMetadataStore(db_path=tmp_path / "metadata.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def search_index(tmp_path: Path) -> SQLiteSearchIndex:
    """Initialised FTS5 search index on a temp DB."""
    index = SQLiteSearchIndex(db_path=tmp_path / "search_index.db")
    await index.initialize()
    return index


@pytest.fixture
def memory_queue() -> InMemoryWorkQueue:
    return InMemoryWorkQueue()


@pytest.fixture
def mock_extractor() -> MagicMock:
    """Extractor returning a fixed 1200-character text."""
    extractor = MagicMock(spec=ITextExtractor)
    extractor.extract.return_value = "x" * 1200
    extractor.get_provider_name.return_value = "mock_extractor"
    return extractor


@pytest.fixture
def stored_file(tmp_path: Path) -> Path:
    """A file that exists on disk for the worker to locate."""
    path = tmp_path / "storage" / "0001_report.pdf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"%PDF-1.4 placeholder")
    return path
