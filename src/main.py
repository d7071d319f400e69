"""Document search FastAPI application entry point.

Constructs every collaborator explicitly (metadata store, search index,
work queue, text extractor) and passes them into the services.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

# ─── STARTUP SEQUENCE ────────────────────────────────────────────────
#
#   create_app()
#     └─ _lifespan
#          1. build_components(settings, config)      (no I/O)
#          2. metadata_store.initialize()              (tables)
#          3. search_index.initialize()                (mapping → schema)
#          4. work_queue.ensure_topology()             (stream + group)
#          5. optional embedded IndexingWorker.run()   (RUN_EMBEDDED_WORKER)
#
# The standalone worker and the consistency sweep reuse
# ``build_components`` from ``src/cli/docsearch.py``.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    RequestLoggingMiddleware,
    configure_cors,
    register_exception_handlers,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.work_queue import IWorkQueue
from src.providers.extraction.file_text_extractor import FileTextExtractor
from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from src.providers.search_index.sqlite_search_index import SQLiteSearchIndex
from src.services.consistency_sweep import ConsistencySweeper
from src.services.indexing_worker import IndexingWorker
from src.services.ingestion_publisher import IngestionPublisher
from src.services.intake_service import DocumentIntakeService
from src.services.search_service import SearchQueryEngine
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Collaborator construction
# ---------------------------------------------------------------------------


def _build_work_queue(app_settings: Settings) -> IWorkQueue:
    """Select the queue backend named by ``QUEUE_BACKEND``."""
    backend = app_settings.queue_backend.lower()
    if backend == "redis":
        from src.providers.queue.redis_stream_queue import RedisStreamWorkQueue

        return RedisStreamWorkQueue(
            redis_url=app_settings.redis_url,
            stream_key=app_settings.queue_stream_key,
            group_name=app_settings.queue_name,
            dead_letter_key=app_settings.queue_dead_letter_key,
            visibility_timeout_ms=app_settings.queue_visibility_timeout_ms,
            block_ms=app_settings.queue_block_ms,
            max_length=app_settings.queue_max_length,
        )
    if backend == "memory":
        from src.providers.queue.memory_queue import InMemoryWorkQueue

        return InMemoryWorkQueue(visibility_timeout_ms=app_settings.queue_visibility_timeout_ms)
    raise ConfigurationError(f"Unknown queue backend: {app_settings.queue_backend!r}")


def build_components(
    app_settings: Settings,
    app_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct all providers and services; performs no I/O.

    Returns
    -------
    dict[str, Any]
        Keys become ``app.state`` attributes: ``metadata_store``,
        ``search_index``, ``work_queue``, ``extractor``, ``publisher``,
        ``intake_service``, ``search_engine``, ``worker``, ``sweeper``.
    """
    app_config = app_config or {}
    index_config = app_config.get("search_index", {})

    metadata_store = SQLiteMetadataStore(db_path=app_settings.metadata_db_path)
    search_index = SQLiteSearchIndex(
        db_path=app_settings.search_index_db_path,
        mapping=index_config.get("mapping"),
        tokenizer=index_config.get("tokenizer", "unicode61"),
    )
    work_queue = _build_work_queue(app_settings)
    extractor = FileTextExtractor()

    publisher = IngestionPublisher(work_queue)
    intake_service = DocumentIntakeService(
        metadata_store=metadata_store,
        publisher=publisher,
        storage_dir=app_settings.storage_dir,
        max_upload_bytes=app_settings.max_upload_bytes,
    )
    search_engine = SearchQueryEngine(
        search_index=search_index,
        snippet_length=app_settings.snippet_length,
        max_query_length=app_settings.search_max_query_length,
        default_max_results=app_settings.search_default_max_results,
    )
    worker = IndexingWorker(
        metadata_store=metadata_store,
        search_index=search_index,
        extractor=extractor,
        work_queue=work_queue,
        consumer_name=app_settings.worker_consumer_name,
        concurrency=app_settings.worker_concurrency,
        batch_size=app_settings.queue_batch_size,
        block_ms=app_settings.queue_block_ms,
        extraction_timeout=app_settings.extraction_timeout_seconds,
    )
    sweeper = ConsistencySweeper(
        metadata_store=metadata_store,
        search_index=search_index,
        work_queue=work_queue,
        batch_size=app_settings.sweep_batch_size,
    )

    return {
        "metadata_store": metadata_store,
        "search_index": search_index,
        "work_queue": work_queue,
        "extractor": extractor,
        "publisher": publisher,
        "intake_service": intake_service,
        "search_engine": search_engine,
        "worker": worker,
        "sweeper": sweeper,
    }


async def provision(components: dict[str, Any]) -> None:
    """Create tables, the index schema and the queue topology."""
    await components["metadata_store"].initialize()
    await components["search_index"].initialize()
    await components["work_queue"].ensure_topology()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(
    app_settings: Settings,
    prebuilt: dict[str, Any] | None,
):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN201
        """Provision collaborators on startup, stop the worker and close on shutdown."""
        components = prebuilt or build_components(app_settings, config)
        for key, value in components.items():
            setattr(application.state, key, value)

        await provision(components)

        stop_event = asyncio.Event()
        worker_task: asyncio.Task[None] | None = None
        if app_settings.run_embedded_worker:
            worker_task = asyncio.create_task(components["worker"].run(stop_event))

        _logger.info(
            "app_startup",
            version=application.version,
            environment=app_settings.app_env,
            queue=components["work_queue"].get_provider_name(),
            search_index=components["search_index"].get_provider_name(),
            embedded_worker=worker_task is not None,
        )

        yield

        stop_event.set()
        if worker_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await worker_task
        await components["work_queue"].close()
        _logger.info("app_shutdown")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    app_settings:
        Settings to use instead of the module-level ones.
    components:
        Pre-built collaborators (see :func:`build_components`); tests pass
        these to run against temporary databases and an in-memory queue.
    """
    app_settings = app_settings or settings
    application = FastAPI(
        title="Document Search API",
        version=str(config.get("app", {}).get("version", "0.1.0")),
        description=(
            "Upload documents, index their text asynchronously, and run "
            "tenant-scoped hybrid search over file names and content."
        ),
        lifespan=_make_lifespan(app_settings, components),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)
    register_exception_handlers(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
