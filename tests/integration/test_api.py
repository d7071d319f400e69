"""Integration tests for the document search API using TestClient.

The app runs against temporary SQLite databases and the in-memory work
queue.  Indexing is driven explicitly with ``worker.process_batch`` so each
test controls when queued documents become searchable.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.config.settings import Settings
from src.main import build_components, create_app
from src.services.indexing_worker import DeliveryOutcome

_EXTRACTOR_MODULE = "src.providers.extraction.file_text_extractor"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        metadata_db_path=str(tmp_path / "metadata.db"),
        search_index_db_path=str(tmp_path / "search_index.db"),
        storage_dir=str(tmp_path / "storage"),
        queue_backend="memory",
        max_upload_bytes=64 * 1024,
        run_embedded_worker=False,
    )


def _fake_pdf(text: str) -> MagicMock:
    page = MagicMock()
    page.get_text.return_value = text
    doc = MagicMock()
    doc.__len__.return_value = 1
    doc.__getitem__.return_value = page
    return doc


def _upload(client: TestClient, name: str, data: bytes, tenant: str | None, content_type: str):
    form = {"tenantId": tenant} if tenant is not None else {}
    return client.post(
        "/api/documents",
        files={"file": (name, data, content_type)},
        data=form,
    )


def _drain(components: dict[str, Any]) -> list:
    return asyncio.run(components["worker"].process_batch(block_ms=0))


@pytest.fixture
def components(tmp_path) -> dict[str, Any]:
    return build_components(_settings(tmp_path))


@pytest.fixture
def client(tmp_path, components):
    app = create_app(_settings(tmp_path), components)
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Upload → index → search
# ---------------------------------------------------------------------------


class TestIndexingFlow:
    def test_uploaded_pdf_becomes_searchable(self, client, components) -> None:
        response = _upload(client, "report.pdf", b"%PDF-1.4 body", "acme", "application/pdf")

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "UPLOADED"
        assert body["fileName"] == "report.pdf"
        document_id = body["documentId"]

        with patch(f"{_EXTRACTOR_MODULE}.fitz") as mock_fitz:
            mock_fitz.open.return_value = _fake_pdf("x" * 1200)
            outcomes = _drain(components)

        assert outcomes == [DeliveryOutcome.INDEXED]

        status = client.get(f"/api/documents/{document_id}", params={"tenant": "acme"}).json()
        assert status["status"] == "INDEXED"
        assert status["indexedAt"] is not None

        search = client.get("/api/search", params={"q": "report", "tenant": "acme"})
        assert search.status_code == 200
        result = search.json()
        assert result["totalResults"] == 1
        assert result["message"] == "Found 1 document(s) matching your query"
        hit = result["results"][0]
        assert hit["id"] == str(document_id)
        assert hit["status"] == "INDEXED"
        assert hit["contentSnippet"] == "x" * 200 + "..."
        assert len(hit["contentSnippet"]) == 203
        assert "score" in hit

    def test_listing_has_no_score(self, client, components) -> None:
        _upload(client, "notes.txt", b"meeting notes for acme", "acme", "text/plain")
        _drain(components)

        listing = client.get("/api/search/all", params={"tenant": "acme"}).json()

        assert listing["totalResults"] == 1
        assert "score" not in listing["results"][0]
        assert listing["results"][0]["contentSnippet"] == "meeting notes for acme"

    def test_corrupted_pdf_is_marked_failed(self, client, components) -> None:
        document_id = _upload(
            client, "broken.pdf", b"garbage", "acme", "application/pdf"
        ).json()["documentId"]

        with patch(f"{_EXTRACTOR_MODULE}.fitz") as mock_fitz:
            mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
            outcomes = _drain(components)

        assert outcomes == [DeliveryOutcome.FAILED]
        status = client.get(f"/api/documents/{document_id}", params={"tenant": "acme"}).json()
        assert status["status"] == "FAILED"
        assert status["indexedAt"] is None

        search = client.get("/api/search", params={"q": "broken", "tenant": "acme"}).json()
        assert search["totalResults"] == 0
        assert search["message"] == "No documents found matching your query"
        assert components["work_queue"].dead_letters

    def test_other_tenant_cannot_see_document(self, client, components) -> None:
        document_id = _upload(
            client, "plan.txt", b"acme roadmap", "acme", "text/plain"
        ).json()["documentId"]
        _drain(components)

        assert client.get("/api/search", params={"q": "roadmap", "tenant": "beta"}).json()[
            "totalResults"
        ] == 0
        status = client.get(f"/api/documents/{document_id}", params={"tenant": "beta"})
        lookup = client.get(f"/api/search/document/{document_id}", params={"tenant": "beta"})

        assert status.status_code == 404
        assert lookup.status_code == 404
        assert lookup.json()["message"] == f"Document not found with id: {document_id}"


# ---------------------------------------------------------------------------
# Search family
# ---------------------------------------------------------------------------


class TestSearchEndpoints:
    @pytest.fixture(autouse=True)
    def _indexed(self, client, components) -> None:
        _upload(client, "budget.csv", b"q1,q2\nrevenue,costs", "acme", "text/csv")
        _upload(client, "Agenda.HTML", b"<p>board agenda</p>", "acme", "text/html")
        _upload(client, "memo.txt", b"board memo", "beta", "text/plain")
        _drain(components)

    def test_file_name_search(self, client) -> None:
        body = client.get("/api/search/filename", params={"name": "budget", "tenant": "acme"}).json()

        assert [r["fileName"] for r in body["results"]] == ["budget.csv"]

    def test_content_search_is_tenant_scoped(self, client) -> None:
        body = client.get("/api/search/content", params={"text": "board", "tenant": "acme"}).json()

        assert [r["fileName"] for r in body["results"]] == ["Agenda.HTML"]

    def test_file_type_filter_normalises_input(self, client) -> None:
        body = client.get("/api/search/filetype", params={"fileType": ".HTML", "tenant": "acme"}).json()

        assert [r["fileType"] for r in body["results"]] == ["html"]

    def test_content_type_filter(self, client) -> None:
        body = client.get(
            "/api/search/type", params={"contentType": "text/csv", "tenant": "acme"}
        ).json()

        assert body["totalResults"] == 1

    def test_advanced_search_combines_criteria(self, client) -> None:
        body = client.get(
            "/api/search/advanced",
            params={"content": "board", "fileType": "html", "tenant": "acme"},
        ).json()
        none = client.get(
            "/api/search/advanced",
            params={"content": "board", "fileType": "csv", "tenant": "acme"},
        ).json()

        assert body["totalResults"] == 1
        assert none["totalResults"] == 0

    def test_delete_removes_entry(self, client) -> None:
        listing = client.get("/api/search/all", params={"tenant": "acme"}).json()
        target = listing["results"][0]["id"]

        response = client.delete(f"/api/search/document/{target}", params={"tenant": "acme"})

        assert response.status_code == 204
        assert client.get(f"/api/search/document/{target}", params={"tenant": "acme"}).status_code == 404


# ---------------------------------------------------------------------------
# Validation and errors
# ---------------------------------------------------------------------------


class TestValidation:
    def test_missing_tenant_is_400_with_structured_body(self, client) -> None:
        response = client.get("/api/search", params={"q": "report"})

        assert response.status_code == 400
        assert response.json() == {
            "status": 400,
            "error": "Bad Request",
            "message": "Tenant ID is required. Please provide 'tenant' parameter.",
            "path": "/api/search",
        }

    def test_blank_query_is_400(self, client) -> None:
        response = client.get("/api/search", params={"q": "   ", "tenant": "acme"})

        assert response.status_code == 400
        assert response.json()["message"] == "Search query 'q' is required and cannot be empty."

    def test_upload_without_tenant_is_400(self, client, components) -> None:
        response = _upload(client, "a.txt", b"x", None, "text/plain")

        assert response.status_code == 400
        assert components["work_queue"].ready_count == 0

    def test_oversized_upload_is_413(self, client) -> None:
        response = _upload(client, "big.txt", b"x" * (64 * 1024 + 1), "acme", "text/plain")

        assert response.status_code == 413
        assert response.json()["error"] == "Payload Too Large"

    def test_non_numeric_document_id_is_400(self, client) -> None:
        response = client.get("/api/documents/abc", params={"tenant": "acme"})

        assert response.status_code == 400

    def test_unknown_route_is_404(self, client) -> None:
        response = client.get("/api/nope")

        assert response.status_code == 404
        assert response.json()["path"] == "/api/nope"


class TestHealth:
    def test_reports_collaborators(self, client) -> None:
        body = client.get("/api/health").json()

        assert body["status"] == "healthy"
        assert body["metadataStore"] == "sqlite_metadata"
        assert body["searchIndex"] == "sqlite_fts"
        assert body["workQueue"] == "memory"
        assert body["indexedDocuments"] == 0
