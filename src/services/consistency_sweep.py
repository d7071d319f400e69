"""Reconciliation of INDEXED records that have no search index entry.

The worker writes the metadata store (INDEXED) before the search index, with
no transaction across the two.  A crash or index outage between the writes
leaves a record that claims to be indexed but cannot be found.  The sweep
pages through INDEXED records, checks each for an index entry, and
republishes an index message for every one that is missing; the worker's
idempotent pipeline then rebuilds the entry.

Entries removed through the search API leave a tombstone in the index and
are skipped, so a tenant delete stays deleted.

The sweep only republishes.  It never deletes records or entries, and it is
never started implicitly: run it with ``python -m src.cli sweep``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.search_index import ISearchIndex
from src.interfaces.work_queue import IWorkQueue
from src.models.document import DocumentStatus, IndexMessage
from src.utils.errors import StoreError

logger = structlog.get_logger(logger_name=__name__)


@dataclass
class SweepReport:
    scanned: int = 0
    missing: int = 0
    deleted: int = 0
    republished: int = 0
    publish_failures: int = 0
    republished_ids: list[int] = field(default_factory=list)


class ConsistencySweeper:
    """Finds INDEXED records without index entries and requeues them.

    Parameters
    ----------
    metadata_store:
        Source of INDEXED records.
    search_index:
        Checked for each record's entry.
    work_queue:
        Receives the republished index messages.
    batch_size:
        Records fetched per page.
    """

    def __init__(
        self,
        metadata_store: IMetadataStore,
        search_index: ISearchIndex,
        work_queue: IWorkQueue,
        batch_size: int = 500,
    ) -> None:
        self._store = metadata_store
        self._index = search_index
        self._queue = work_queue
        self._batch_size = max(1, batch_size)

    async def sweep(self, dry_run: bool = False) -> SweepReport:
        """Run one full pass; with *dry_run* only count the gaps."""
        report = SweepReport()
        after_id = 0

        while True:
            records = await self._store.list_by_status(
                DocumentStatus.INDEXED, limit=self._batch_size, after_id=after_id
            )
            if not records:
                break
            after_id = records[-1].id or after_id

            for record in records:
                report.scanned += 1
                entry_id = record.entry_id()
                if await self._index.find_by_id(entry_id) is not None:
                    continue
                if await self._index.was_deleted(entry_id):
                    report.deleted += 1
                    continue
                report.missing += 1
                logger.warning(
                    "index_entry_missing", document_id=record.id, tenant_id=record.tenant_id
                )
                if dry_run:
                    continue
                try:
                    await self._queue.publish(IndexMessage.from_record(record))
                except StoreError as exc:
                    report.publish_failures += 1
                    logger.error("sweep_republish_failed", document_id=record.id, error=str(exc))
                    continue
                report.republished += 1
                report.republished_ids.append(record.id)

            if len(records) < self._batch_size:
                break

        logger.info(
            "consistency_sweep_completed",
            scanned=report.scanned,
            missing=report.missing,
            deleted=report.deleted,
            republished=report.republished,
            publish_failures=report.publish_failures,
            dry_run=dry_run,
        )
        return report

    async def run_periodically(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        """Sweep every *interval_seconds* until *stop_event* is set."""
        while not stop_event.is_set():
            try:
                await self.sweep()
            except StoreError as exc:
                # the next pass starts over from the first INDEXED record
                logger.error("consistency_sweep_failed", error=str(exc))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
