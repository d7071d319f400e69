"""Indexing worker: the document lifecycle state machine.

# ─── STATE MACHINE ───────────────────────────────────────────────────
#
#   UPLOADED ──► PROCESSING ──► INDEXED
#                    │
#                    └────────► FAILED
#
#   A redelivered message moves INDEXED / FAILED back to PROCESSING and
#   repeats the pipeline; the index entry id is ``str(document_id)`` so the
#   rerun overwrites instead of duplicating.
#
# Per message (:meth:`IndexingWorker.index_document`):
#
#   1. look up the record           missing → DocumentNotFoundError (drop)
#   2. save status=PROCESSING       visible before extraction starts
#   3. locate the file              missing → ExtractionError
#   4. extract text (thread, timeout)  error / timeout / blank → ExtractionError
#   5. save status=INDEXED + indexed_at, THEN save the SearchIndexEntry
#   6-7. any failure after step 2 → save status=FAILED, re-raise
#
# The metadata store and the search index fail independently and there is
# no transaction spanning them.  If the index write in step 5 fails, the
# record is marked FAILED (step 7).  If the worker dies between the two
# writes, the record says INDEXED with no entry; ConsistencySweeper finds
# and republishes those.
#
# ─── ACKNOWLEDGEMENT POLICY (handle_delivery) ────────────────────────
#
#   outcome                                   ack?   dead-letter?
#   ─────────────────────────────────────────────────────────────────
#   indexed                                   yes    no
#   record missing / payload undecodable      yes    yes
#   failed, FAILED status persisted           yes    yes
#   status could not be persisted             no     no   (redelivered)
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.search_index import ISearchIndex
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.work_queue import IWorkQueue, QueueDelivery
from src.models.document import (
    DocumentRecord,
    DocumentStatus,
    IndexMessage,
    SearchIndexEntry,
    utc_now,
)
from src.utils.concurrency import run_blocking, throttled_gather
from src.utils.errors import (
    DocumentNotFoundError,
    ExtractionError,
    MetadataStoreError,
    StoreError,
)

logger = structlog.get_logger(logger_name=__name__)

_RECEIVE_BACKOFF_SECONDS = 2.0


class StatusNotPersistedError(MetadataStoreError):
    """The worker could not record the document's current lifecycle status.

    Raised when the metadata store is unreachable at lookup, at the
    PROCESSING write, or at the FAILED write.  The message must stay
    unacknowledged so the queue redelivers it.
    """


class DeliveryOutcome(str, Enum):
    INDEXED = "indexed"
    FAILED = "failed"
    DROPPED = "dropped"
    RETRY = "retry"


class IndexingWorker:
    """Consumes index-work messages and drives documents to INDEXED or FAILED.

    Parameters
    ----------
    metadata_store:
        Owner of the document lifecycle records.
    search_index:
        Destination of the extracted text.
    extractor:
        Blocking ``path -> text`` extractor, run in a thread.
    work_queue:
        Source of deliveries; only needed for :meth:`handle_delivery` and
        :meth:`run`.
    consumer_name:
        This worker's name within the consumer group.
    concurrency:
        Deliveries processed in parallel within one batch.
    batch_size:
        Deliveries pulled per receive.
    block_ms:
        How long one receive waits for new messages.
    extraction_timeout:
        Seconds before extraction is abandoned as failed; ``None`` or
        ``0`` disables the bound.

    Extraction runs on a pool of ``concurrency`` threads owned by the
    worker.  A parse that times out cannot be interrupted: its thread keeps
    running until the parser returns and holds one pool slot meanwhile, so
    repeated hangs slow later extractions down to the remaining slots
    without touching the event loop's default executor.  The pool is shut
    down when :meth:`run` returns.
    """

    def __init__(
        self,
        metadata_store: IMetadataStore,
        search_index: ISearchIndex,
        extractor: ITextExtractor,
        work_queue: IWorkQueue | None = None,
        consumer_name: str = "indexer-1",
        concurrency: int = 4,
        batch_size: int = 10,
        block_ms: int = 5_000,
        extraction_timeout: float | None = 120.0,
    ) -> None:
        self._store = metadata_store
        self._index = search_index
        self._extractor = extractor
        self._queue = work_queue
        self._consumer_name = consumer_name
        self._concurrency = max(1, concurrency)
        self._batch_size = max(1, batch_size)
        self._block_ms = block_ms
        self._extraction_timeout = extraction_timeout
        self._extraction_pool: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Per-message pipeline
    # ------------------------------------------------------------------

    async def index_document(self, message: IndexMessage) -> DocumentRecord:
        """Run the lifecycle for one message and return the INDEXED record.

        Raises
        ------
        DocumentNotFoundError
            No record exists for ``message.document_id``.
        StatusNotPersistedError
            The metadata store could not be read or written; the status is
            stale.
        ExtractionError, SearchIndexError, MetadataStoreError
            The document failed and was marked FAILED.
        """
        document_id = message.document_id
        log = logger.bind(document_id=document_id)
        started = time.perf_counter()

        try:
            record = await self._store.get(document_id)
            if record is None:
                raise DocumentNotFoundError(f"No document record with id {document_id}")
            processing = await self._store.save(
                record.model_copy(update={"status": DocumentStatus.PROCESSING})
            )
        except MetadataStoreError as exc:
            log.error("document_status_not_persisted", stage="processing", error=str(exc))
            raise StatusNotPersistedError(str(exc), provider_name=exc.provider_name) from exc

        log = log.bind(tenant_id=processing.tenant_id)
        log.info("document_processing", reprocess=record.status != DocumentStatus.UPLOADED)

        try:
            content = await self._extract(Path(message.file_path), message.content_type)
            indexed = await self._store.save(
                processing.model_copy(
                    update={"status": DocumentStatus.INDEXED, "indexed_at": utc_now()}
                )
            )
            await self._index.save(SearchIndexEntry.from_record(indexed, content))
        except Exception as exc:
            await self._mark_failed(processing, exc)
            raise

        log.info(
            "document_indexed",
            chars=len(content),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return indexed

    async def _extract(self, path: Path, content_type: str | None) -> str:
        if not path.is_file():
            raise ExtractionError(f"File not found: {path}")
        try:
            text = await run_blocking(
                self._extractor.extract,
                path,
                content_type,
                timeout=self._extraction_timeout,
                executor=self._pool(),
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "extraction_abandoned", file_name=path.name, timeout=self._extraction_timeout
            )
            raise ExtractionError(
                f"Extraction of {path.name} exceeded {self._extraction_timeout}s",
                provider_name=self._extractor.get_provider_name(),
            ) from exc
        if not text or not text.strip():
            raise ExtractionError(
                f"No text could be extracted from {path.name}",
                provider_name=self._extractor.get_provider_name(),
            )
        return text

    async def _mark_failed(self, processing: DocumentRecord, cause: Exception) -> None:
        failed = processing.model_copy(update={"status": DocumentStatus.FAILED})
        try:
            await self._store.save(failed)
        except MetadataStoreError as exc:
            logger.error(
                "document_status_not_persisted",
                document_id=processing.id,
                stage="failed",
                cause=str(cause),
                error=str(exc),
            )
            raise StatusNotPersistedError(str(exc), provider_name=exc.provider_name) from cause
        logger.warning(
            "document_failed",
            document_id=processing.id,
            tenant_id=processing.tenant_id,
            error_type=type(cause).__name__,
            error=str(cause),
        )

    # ------------------------------------------------------------------
    # Queue integration
    # ------------------------------------------------------------------

    async def handle_delivery(self, delivery: QueueDelivery) -> DeliveryOutcome:
        """Process one delivery and acknowledge it according to its outcome."""
        queue = self._require_queue()
        log = logger.bind(delivery_id=delivery.delivery_id, redelivered=delivery.redelivered)

        try:
            if delivery.message is None:
                log.error("index_message_undecodable")
                await queue.dead_letter(delivery, "undecodable payload")
                await queue.ack(delivery)
                return DeliveryOutcome.DROPPED

            log.info("index_message_received", document_id=delivery.message.document_id)
            try:
                await self.index_document(delivery.message)
            except DocumentNotFoundError as exc:
                log.error("index_message_dropped", reason=str(exc))
                await queue.dead_letter(delivery, str(exc))
                await queue.ack(delivery)
                return DeliveryOutcome.DROPPED
            except StatusNotPersistedError:
                return DeliveryOutcome.RETRY
            except Exception as exc:
                await queue.dead_letter(delivery, f"{type(exc).__name__}: {exc}")
                await queue.ack(delivery)
                return DeliveryOutcome.FAILED

            await queue.ack(delivery)
            return DeliveryOutcome.INDEXED
        except StoreError as exc:
            # ack / dead-letter failed; the queue will redeliver
            log.error("index_message_ack_failed", error=str(exc))
            return DeliveryOutcome.RETRY

    async def process_batch(self, block_ms: int | None = None) -> list[DeliveryOutcome]:
        """Receive one batch and process it with bounded concurrency."""
        queue = self._require_queue()
        deliveries = await queue.receive(
            self._consumer_name,
            count=self._batch_size,
            block_ms=self._block_ms if block_ms is None else block_ms,
        )
        if not deliveries:
            return []
        semaphore = asyncio.Semaphore(self._concurrency)
        results = await throttled_gather(
            [self.handle_delivery(d) for d in deliveries], semaphore, return_exceptions=False
        )
        return list(results)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Consume until *stop_event* is set.

        Provisions the queue topology first, so a worker started before
        the API still finds its consumer group.
        """
        queue = self._require_queue()
        await queue.ensure_topology()
        logger.info(
            "indexing_worker_started",
            consumer=self._consumer_name,
            queue=queue.get_provider_name(),
            concurrency=self._concurrency,
        )

        processed = 0
        try:
            while not stop_event.is_set():
                try:
                    outcomes = await self.process_batch()
                except StoreError as exc:
                    logger.error("work_queue_receive_failed", error=str(exc))
                    await _wait_or_stop(stop_event, _RECEIVE_BACKOFF_SECONDS)
                    continue
                processed += len(outcomes)
        finally:
            self.close()

        logger.info("indexing_worker_stopped", consumer=self._consumer_name, processed=processed)

    def close(self) -> None:
        """Release the extraction pool without waiting for abandoned threads."""
        if self._extraction_pool is not None:
            self._extraction_pool.shutdown(wait=False, cancel_futures=True)
            self._extraction_pool = None

    def _pool(self) -> ThreadPoolExecutor:
        if self._extraction_pool is None:
            self._extraction_pool = ThreadPoolExecutor(
                max_workers=self._concurrency, thread_name_prefix="extract"
            )
        return self._extraction_pool

    def _require_queue(self) -> IWorkQueue:
        if self._queue is None:
            raise RuntimeError("IndexingWorker was constructed without a work queue")
        return self._queue


async def _wait_or_stop(stop_event: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
