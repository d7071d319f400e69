"""API middleware: CORS, request logging, and structured error handlers.

# ─── ERROR RENDERING ─────────────────────────────────────────────────
#
# Every failure leaves the API as an ErrorResponse body:
#
#   {"status": 404, "error": "Not Found",
#    "message": "Document not found with id: 7", "path": "/api/search/document/7"}
#
#   DocSearchError subclasses   → their own status_code / error_label
#   RequestValidationError      → 400 (missing or malformed parameters)
#   Starlette HTTPException     → its status code (unknown route, 405, ...)
#   anything else               → 500, details kept in the server log
#
# Handlers are registered with ``register_exception_handlers(app)`` rather
# than as a middleware, so RequestLoggingMiddleware still sees the final
# status code.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time
from http import HTTPStatus

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import DocSearchError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; ``["*"]`` when no origins are given."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


def error_response(status_code: int, message: str, path: str, error: str | None = None) -> JSONResponse:
    """Build the structured error body for *status_code*."""
    label = error or _status_phrase(status_code)
    body = ErrorResponse(status=status_code, error=label, message=message, path=path)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


async def _handle_app_error(request: Request, exc: DocSearchError) -> JSONResponse:
    log = _logger.warning if exc.status_code < 500 else _logger.error
    log(
        "application_error",
        error_type=type(exc).__name__,
        message=exc.message,
        provider=exc.provider_name,
        path=str(request.url.path),
        status=exc.status_code,
    )
    message = exc.message
    if exc.status_code >= 500:
        message = f"Request failed: {exc.message}"
    return error_response(exc.status_code, message, str(request.url.path), exc.error_label)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p not in ("query", "body"))
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    _logger.warning("request_validation_failed", path=str(request.url.path), message=message)
    return error_response(400, message, str(request.url.path))


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), str(request.url.path))


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    _logger.error(
        "unhandled_error",
        error_type=type(exc).__name__,
        error=str(exc),
        path=str(request.url.path),
    )
    return error_response(500, "An unexpected error occurred", str(request.url.path))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that render every failure as an ErrorResponse."""
    app.add_exception_handler(DocSearchError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)
    app.add_exception_handler(Exception, _handle_unexpected)
