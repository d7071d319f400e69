"""Unit tests for ConsistencySweeper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.work_queue import IWorkQueue
from src.models.document import DocumentStatus, SearchIndexEntry
from src.services.consistency_sweep import ConsistencySweeper
from src.services.search_service import SearchQueryEngine
from src.utils.errors import MetadataStoreError, QueuePublishError


async def _indexed(metadata_store, make_record, **overrides):
    record = await metadata_store.create(make_record(id=None, **overrides))
    indexed = record.model_copy(update={"status": DocumentStatus.INDEXED})
    await metadata_store.save(indexed)
    return indexed


class TestSweep:
    @pytest.mark.asyncio
    async def test_republishes_only_missing_entries(
        self, metadata_store, search_index, memory_queue, make_record
    ) -> None:
        present = await _indexed(metadata_store, make_record, file_name="a.txt")
        missing = await _indexed(metadata_store, make_record, file_name="b.txt")
        await metadata_store.create(make_record(id=None, file_name="c.txt"))
        await search_index.save(SearchIndexEntry.from_record(present, "body"))
        sweeper = ConsistencySweeper(metadata_store, search_index, memory_queue, batch_size=1)

        report = await sweeper.sweep()

        assert report.scanned == 2
        assert report.missing == 1
        assert report.republished_ids == [missing.id]
        (delivery,) = await memory_queue.receive("c1")
        assert delivery.message.document_id == missing.id

    @pytest.mark.asyncio
    async def test_dry_run_publishes_nothing(
        self, metadata_store, search_index, memory_queue, make_record
    ) -> None:
        await _indexed(metadata_store, make_record)
        sweeper = ConsistencySweeper(metadata_store, search_index, memory_queue)

        report = await sweeper.sweep(dry_run=True)

        assert report.missing == 1
        assert report.republished == 0
        assert memory_queue.ready_count == 0

    @pytest.mark.asyncio
    async def test_publish_failures_are_counted_and_sweep_continues(
        self, metadata_store, search_index, make_record
    ) -> None:
        await _indexed(metadata_store, make_record, file_name="a.txt")
        second = await _indexed(metadata_store, make_record, file_name="b.txt")
        queue = MagicMock(spec=IWorkQueue)
        queue.publish = AsyncMock(side_effect=[QueuePublishError("down"), "1-0"])
        sweeper = ConsistencySweeper(metadata_store, search_index, queue)

        report = await sweeper.sweep()

        assert report.publish_failures == 1
        assert report.republished_ids == [second.id]

    @pytest.mark.asyncio
    async def test_entry_deleted_by_tenant_is_not_requeued(
        self, metadata_store, search_index, memory_queue, make_record
    ) -> None:
        record = await _indexed(metadata_store, make_record)
        await search_index.save(SearchIndexEntry.from_record(record, "quarterly numbers"))
        await SearchQueryEngine(search_index).delete_document(record.id, "acme")

        report = await ConsistencySweeper(metadata_store, search_index, memory_queue).sweep()

        assert report.scanned == 1
        assert report.deleted == 1
        assert report.missing == 0
        assert report.republished == 0
        assert memory_queue.ready_count == 0

    @pytest.mark.asyncio
    async def test_empty_store(self, metadata_store, search_index, memory_queue) -> None:
        report = await ConsistencySweeper(metadata_store, search_index, memory_queue).sweep()

        assert report.scanned == 0
        assert report.missing == 0


class TestRunPeriodically:
    @pytest.mark.asyncio
    async def test_stops_when_event_is_set(self, metadata_store, search_index, memory_queue) -> None:
        sweeper = ConsistencySweeper(metadata_store, search_index, memory_queue)
        stop = asyncio.Event()

        task = asyncio.create_task(sweeper.run_periodically(0.01, stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert task.done()

    @pytest.mark.asyncio
    async def test_store_error_does_not_end_the_loop(
        self, metadata_store, search_index, memory_queue
    ) -> None:
        metadata_store.list_by_status = AsyncMock(side_effect=MetadataStoreError("down"))
        sweeper = ConsistencySweeper(metadata_store, search_index, memory_queue)
        stop = asyncio.Event()

        task = asyncio.create_task(sweeper.run_periodically(0.01, stop))
        await asyncio.sleep(0.1)
        assert metadata_store.list_by_status.await_count >= 3
        assert not task.done()
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert task.exception() is None
