"""Unit tests for FileTextExtractor.

Text and HTML run on real temp files; PDF and EPUB parsing is mocked at the
module's ``fitz`` and ``epub`` names.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from src.providers.extraction.file_text_extractor import FileTextExtractor
from src.utils.errors import ExtractionError

_MODULE = "src.providers.extraction.file_text_extractor"


@pytest.fixture
def extractor() -> FileTextExtractor:
    return FileTextExtractor()


def _write(tmp_path: Path, name: str, data: bytes) -> Path:
    path = tmp_path / name
    path.write_bytes(data)
    return path


def _fake_pdf(pages: list[str]) -> MagicMock:
    doc = MagicMock()
    doc.__len__.return_value = len(pages)
    page_mocks = []
    for text in pages:
        page = MagicMock()
        page.get_text.return_value = text
        page_mocks.append(page)
    doc.__getitem__.side_effect = lambda i: page_mocks[i]
    return doc


class TestPlainText:
    def test_reads_utf8(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "notes.txt", "Grüße from the acme team".encode("utf-8"))

        assert extractor.extract(path, "text/plain") == "Grüße from the acme team"

    def test_invalid_bytes_are_replaced(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "log.log", b"ok \xff end")

        assert extractor.extract(path) == "ok � end"

    def test_mime_type_fallback_for_unknown_extension(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "README", b"plain body")

        assert extractor.extract(path, "text/plain; charset=utf-8") == "plain body"


class TestHtml:
    def test_strips_markup_scripts_and_styles(self, extractor, tmp_path) -> None:
        markup = (
            b"<html><head><style>p {color: red}</style>"
            b"<script>alert('x')</script></head>"
            b"<body><h1>Budget</h1><p>Quarterly   numbers</p></body></html>"
        )
        path = _write(tmp_path, "page.html", markup)

        text = extractor.extract(path, "text/html")

        assert "Budget" in text
        assert "Quarterly numbers" in text
        assert "alert" not in text
        assert "color" not in text


class TestPdf:
    def test_joins_non_blank_pages(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "report.pdf", b"%PDF-1.4")
        doc = _fake_pdf(["Page one ", "   ", "Page three"])

        with patch(f"{_MODULE}.fitz") as mock_fitz:
            mock_fitz.open.return_value = doc
            text = extractor.extract(path, "application/pdf")

        assert text == "Page one\n\nPage three"
        mock_fitz.open.assert_called_once_with(str(path))
        doc.close.assert_called_once()

    def test_corrupt_pdf_raises_extraction_error(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "broken.pdf", b"not a pdf")

        with patch(f"{_MODULE}.fitz") as mock_fitz:
            mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
            with pytest.raises(ExtractionError, match="Cannot open PDF broken.pdf"):
                extractor.extract(path, "application/pdf")

    def test_page_read_failure_still_closes_document(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "report.pdf", b"%PDF-1.4")
        doc = _fake_pdf(["x"])
        doc.__getitem__.side_effect = RuntimeError("damaged xref")

        with patch(f"{_MODULE}.fitz") as mock_fitz:
            mock_fitz.open.return_value = doc
            with pytest.raises(ExtractionError, match="Cannot read PDF"):
                extractor.extract(path)

        doc.close.assert_called_once()


class TestEpub:
    def test_extracts_document_items(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "book.epub", b"PK")
        chapter = MagicMock()
        chapter.get_content.return_value = b"<html><body><p>Chapter one text</p></body></html>"
        book = MagicMock()
        book.get_items_of_type.return_value = [chapter]

        with patch(f"{_MODULE}.epub") as mock_epub:
            mock_epub.read_epub.return_value = book
            text = extractor.extract(path, "application/epub+zip")

        assert text == "Chapter one text"
        mock_epub.read_epub.assert_called_once_with(str(path), options={"ignore_ncx": True})

    def test_unreadable_epub_raises(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "book.epub", b"PK")

        with patch(f"{_MODULE}.epub") as mock_epub:
            mock_epub.read_epub.side_effect = ValueError("bad zip")
            with pytest.raises(ExtractionError):
                extractor.extract(path)


class TestFailures:
    def test_missing_file(self, extractor, tmp_path) -> None:
        with pytest.raises(ExtractionError, match="File not found"):
            extractor.extract(tmp_path / "gone.txt")

    def test_unsupported_format(self, extractor, tmp_path) -> None:
        path = _write(tmp_path, "image.png", b"\x89PNG")

        with pytest.raises(ExtractionError, match="Unsupported format"):
            extractor.extract(path, "image/png")

    def test_supports(self, extractor) -> None:
        assert extractor.supports(Path("a.PDF"))
        assert extractor.supports(Path("blob"), "application/json")
        assert not extractor.supports(Path("a.png"), "image/png")
        assert extractor.get_provider_name() == "file_text_extractor"
