"""Structured logging for the document search service.

:func:`configure_logging` runs once, when ``src.main`` is imported, so the
FastAPI app and every ``python -m src.cli`` command (worker, sweep,
provision) share it.  Events are snake_case names (``upload_stored``,
``document_indexed``, ``index_message_dropped``,
``consistency_sweep_completed``) with the document lifecycle carried as
fields: ``document_id`` and ``tenant_id`` on per-document lines,
``delivery_id`` and ``redelivered`` on queue handling.  The worker binds
those with ``logger.bind``; values put in structlog contextvars are merged
ahead of them.

Development gets the coloured console renderer; ``APP_ENV=production`` or
``json_output`` switches to one JSON object per line for log shipping.
Standard-library ``logging`` (uvicorn, redis) goes through the same
formatter, and the per-statement DEBUG chatter of aiosqlite, asyncio and
the multipart parser is held at WARNING.
"""

import logging
import os
import sys

import structlog

# Libraries that log every statement / connection at DEBUG.
_NOISY_LOGGERS = ("aiosqlite", "asyncio", "multipart")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR, FATAL).
        json_output: Force JSON output. When False, uses console rendering in
                     development and JSON in production (detected via APP_ENV).

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # contextvars first so document_id / tenant_id bindings reach every line.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root_logger.level))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger.

    If structlog has not been configured yet, calls configure_logging() with defaults.

    Args:
        name: Logger name, typically the module name.

    Returns:
        A structlog BoundLogger bound with the given name.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)
