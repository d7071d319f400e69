"""Local-file text extraction.

Dispatches on file extension, falling back to the recorded MIME type:

- **PDF**    -- PyMuPDF (``fitz``), page by page
- **EPUB**   -- ebooklib document items, HTML stripped with BeautifulSoup
- **HTML/XML** -- BeautifulSoup ``get_text``
- **Plain text family** (txt, md, csv, json, log, ...) -- UTF-8 decode with
  replacement characters

Every failure (missing file, unsupported format, parser error) surfaces as
:class:`~src.utils.errors.ExtractionError`.  Calls block; the indexing
worker runs them in a thread.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Callable

import ebooklib
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup
from ebooklib import epub

from src.interfaces.text_extractor import ITextExtractor
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER = "file_text_extractor"

_TEXT_EXTENSIONS = frozenset(
    {"txt", "text", "md", "markdown", "csv", "tsv", "json", "log", "rst", "yaml", "yml", "ini"}
)
_HTML_EXTENSIONS = frozenset({"html", "htm", "xhtml", "xml"})

_MIME_TO_KIND = {
    "application/pdf": "pdf",
    "application/epub+zip": "epub",
    "text/html": "html",
    "application/xhtml+xml": "html",
    "application/xml": "html",
    "text/xml": "html",
    "application/json": "text",
}

_MULTI_SPACE = re.compile(r"[ \t]+")
_MULTI_NEWLINE = re.compile(r"\n{3,}")


class FileTextExtractor(ITextExtractor):
    """Extract plain text from PDF, EPUB, HTML/XML and text files on disk."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Path], str]] = {
            "pdf": self._extract_pdf,
            "epub": self._extract_epub,
            "html": self._extract_html,
            "text": self._extract_text,
        }

    def extract(self, file_path: Path, content_type: str | None = None) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise ExtractionError(f"File not found: {path}", provider_name=_PROVIDER)

        kind = self._kind_for(path, content_type)
        if kind is None:
            raise ExtractionError(
                f"Unsupported format for {path.name} ({content_type or 'no content type'})",
                provider_name=_PROVIDER,
            )

        text = self._handlers[kind](path)
        logger.debug("text_extracted", file_path=str(path), kind=kind, chars=len(text))
        return text

    def supports(self, file_path: Path, content_type: str | None = None) -> bool:
        return self._kind_for(Path(file_path), content_type) is not None

    def get_provider_name(self) -> str:
        return _PROVIDER

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _kind_for(path: Path, content_type: str | None) -> str | None:
        ext = path.suffix.lower().lstrip(".")
        if ext == "pdf":
            return "pdf"
        if ext == "epub":
            return "epub"
        if ext in _HTML_EXTENSIONS:
            return "html"
        if ext in _TEXT_EXTENSIONS:
            return "text"

        mime = (content_type or "").split(";")[0].strip().lower()
        if mime in _MIME_TO_KIND:
            return _MIME_TO_KIND[mime]
        if mime.startswith("text/"):
            return "text"
        return None

    @staticmethod
    def _extract_pdf(path: Path) -> str:
        try:
            doc = fitz.open(str(path))
        except Exception as exc:
            raise ExtractionError(
                f"Cannot open PDF {path.name}: {exc}", provider_name=_PROVIDER
            ) from exc

        try:
            pages = [doc[i].get_text("text").strip() for i in range(len(doc))]
        except Exception as exc:
            raise ExtractionError(
                f"Cannot read PDF {path.name}: {exc}", provider_name=_PROVIDER
            ) from exc
        finally:
            doc.close()

        return "\n\n".join(p for p in pages if p)

    @staticmethod
    def _extract_epub(path: Path) -> str:
        try:
            book = epub.read_epub(str(path), options={"ignore_ncx": True})
        except Exception as exc:
            raise ExtractionError(
                f"Cannot open EPUB {path.name}: {exc}", provider_name=_PROVIDER
            ) from exc

        parts: list[str] = []
        for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
            html_content = item.get_content().decode("utf-8", errors="replace")
            text = _clean(BeautifulSoup(html_content, "html.parser").get_text(separator="\n"))
            if text:
                parts.append(text)
        return "\n\n".join(parts)

    @staticmethod
    def _extract_html(path: Path) -> str:
        try:
            markup = path.read_bytes()
        except OSError as exc:
            raise ExtractionError(
                f"Cannot read {path.name}: {exc}", provider_name=_PROVIDER
            ) from exc
        soup = BeautifulSoup(markup, "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()
        return _clean(soup.get_text(separator="\n"))

    @staticmethod
    def _extract_text(path: Path) -> str:
        try:
            return path.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            raise ExtractionError(
                f"Cannot read {path.name}: {exc}", provider_name=_PROVIDER
            ) from exc


def _clean(text: str) -> str:
    text = _MULTI_SPACE.sub(" ", text)
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return text.strip()
