"""Abstract base class for text extraction.

Turning file bytes into plain text is an external capability the indexing
worker invokes.  Implementations may wrap PyMuPDF, Apache Tika, textract,
or a remote extraction service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# Concrete implementation: FileTextExtractor (src/providers/extraction/)
class ITextExtractor(ABC):
    """Contract for ``path -> extracted text, or failure``.

    :meth:`extract` is synchronous and may block on CPU or disk; the worker
    runs it in a thread with a timeout.
    """

    @abstractmethod
    def extract(self, file_path: Path, content_type: str | None = None) -> str:
        """Return the plain text of the file at *file_path*.

        Parameters
        ----------
        file_path:
            Location of the stored document.
        content_type:
            MIME type recorded at upload, used when the extension is
            missing or ambiguous.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the file is missing, unreadable, corrupt, or of an
            unsupported format.
        """

    @abstractmethod
    def supports(self, file_path: Path, content_type: str | None = None) -> bool:
        """Return ``True`` if :meth:`extract` can handle this file."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
