"""Custom exception hierarchy for the document search service.

All application exceptions inherit from :class:`DocSearchError`, which
carries an optional ``provider_name`` so error handlers can identify which
external system (e.g. "redis", "sqlite_fts", "pymupdf") caused the failure.

The hierarchy follows the failure taxonomy of the indexing pipeline:

    DocSearchError  (base -- catch-all for any application error)
    +-- ClientValidationError    (bad caller input, HTTP 400)
    |   +-- PayloadTooLargeError (oversized upload, HTTP 413)
    +-- DocumentNotFoundError    (absent id OR wrong tenant, HTTP 404)
    +-- ExtractionError          (unreadable / unsupported / missing file)
    +-- StoreError               (metadata store, search index or queue down)
    |   +-- MetadataStoreError
    |   +-- SearchIndexError
    |   +-- QueuePublishError
    +-- UnsupportedQueryError    (query expression the index cannot compile)
    +-- ConfigurationError       (startup / missing config)

Each class declares the HTTP ``status_code`` and short ``error_label`` the
API layer renders into its structured ``{status, error, message, path}`` body.
"""


class DocSearchError(Exception):
    """Base exception for all document search errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external system triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[redis] Connection refused``.
    """

    status_code: int = 500
    error_label: str = "Internal Server Error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------

class ClientValidationError(DocSearchError):
    """Raised for missing/blank query or tenant and other invalid caller input.

    Never retried; surfaced immediately as a 400-equivalent.
    """

    status_code = 400
    error_label = "Bad Request"

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PayloadTooLargeError(ClientValidationError):
    """Raised when an uploaded document exceeds the configured size limit."""

    status_code = 413
    error_label = "Payload Too Large"

    def __init__(
        self,
        message: str = "Payload exceeds the maximum allowed size",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(DocSearchError):
    """Raised when a document id is absent, or present under another tenant.

    Both cases produce the same error so that callers cannot probe for the
    existence of another tenant's documents.
    """

    status_code = 404
    error_label = "Not Found"

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Worker errors
# ---------------------------------------------------------------------------

class ExtractionError(DocSearchError):
    """Raised when text extraction fails (corrupt file, unsupported format,
    missing file on disk, or extraction timeout).

    Terminal for the message that triggered it: the document moves to FAILED.
    """

    error_label = "Extraction Failed"

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------

class StoreError(DocSearchError):
    """Raised when an external store is unreachable or rejects a write."""

    def __init__(
        self,
        message: str = "Storage backend failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MetadataStoreError(StoreError):
    """Raised when the document metadata store fails."""

    def __init__(
        self,
        message: str = "Metadata store failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchIndexError(StoreError):
    """Raised when the full-text search index fails."""

    def __init__(
        self,
        message: str = "Search index failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QueuePublishError(StoreError):
    """Raised when an index-work message cannot be handed to the work queue.

    The document stays UPLOADED and is never enqueued; there is no automatic
    retry at the publishing layer.
    """

    def __init__(
        self,
        message: str = "Failed to publish message",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Programming / configuration errors
# ---------------------------------------------------------------------------

class UnsupportedQueryError(DocSearchError):
    """Raised when a query expression cannot be compiled by the search index."""

    def __init__(
        self,
        message: str = "Unsupported query expression",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocSearchError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
