"""Utility modules for the document search service.

- **errors** -- Domain-specific exception hierarchy rooted at DocSearchError;
  each failure kind (client input, not-found, extraction, store) has its own
  subclass carrying the HTTP status the API renders for it.
- **concurrency** -- bounded ``asyncio.gather`` and thread offloading with a
  timeout, used by the indexing worker.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from src.utils.concurrency import run_blocking, throttled_gather
from src.utils.errors import (
    ClientValidationError,
    ConfigurationError,
    DocSearchError,
    DocumentNotFoundError,
    ExtractionError,
    MetadataStoreError,
    PayloadTooLargeError,
    QueuePublishError,
    SearchIndexError,
    StoreError,
    UnsupportedQueryError,
)
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ClientValidationError",
    "ConfigurationError",
    "DocSearchError",
    "DocumentNotFoundError",
    "ExtractionError",
    "MetadataStoreError",
    "PayloadTooLargeError",
    "QueuePublishError",
    "SearchIndexError",
    "StoreError",
    "UnsupportedQueryError",
    "configure_logging",
    "get_logger",
    "run_blocking",
    "throttled_gather",
]
