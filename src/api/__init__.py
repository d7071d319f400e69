"""Document search API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    RequestLoggingMiddleware,
    configure_cors,
    register_exception_handlers,
)
from src.api.routes import router
from src.api.schemas import (
    DocumentStatusResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
    SearchResponse,
    SearchResultResponse,
)

__all__ = [
    "RequestLoggingMiddleware",
    "configure_cors",
    "register_exception_handlers",
    "router",
    "DocumentStatusResponse",
    "DocumentUploadResponse",
    "ErrorResponse",
    "HealthResponse",
    "SearchResponse",
    "SearchResultResponse",
]
