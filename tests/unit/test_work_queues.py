"""Unit tests for the work queue backends.

InMemoryWorkQueue is exercised directly; RedisStreamWorkQueue runs against an
AsyncMock standing in for ``redis.asyncio.Redis``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from redis import exceptions as redis_exceptions

from src.interfaces.work_queue import QueueDelivery
from src.models.document import IndexMessage
from src.providers.queue.memory_queue import InMemoryWorkQueue
from src.providers.queue.redis_stream_queue import RedisStreamWorkQueue
from src.utils.errors import QueuePublishError, StoreError

STREAM = "document.exchange:document.index"
GROUP = "document.index.queue"
DLQ = "document.exchange:document.index:dlq"


def _message(document_id: int = 42) -> IndexMessage:
    return IndexMessage(
        document_id=document_id,
        file_name="report.pdf",
        file_path="/data/report.pdf",
        content_type="application/pdf",
        file_size=1024,
        uploaded_at=datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc),
    )


def _redis_queue(client: AsyncMock) -> RedisStreamWorkQueue:
    return RedisStreamWorkQueue(
        redis_url="redis://localhost:6379/0",
        stream_key=STREAM,
        group_name=GROUP,
        dead_letter_key=DLQ,
        visibility_timeout_ms=60_000,
        block_ms=100,
        max_length=1000,
        client=client,
    )


# ======================================================================
# InMemoryWorkQueue
# ======================================================================


class TestInMemoryWorkQueue:
    @pytest.mark.asyncio
    async def test_publish_then_receive_decodes_message(self, memory_queue) -> None:
        message_id = await memory_queue.publish(_message())

        deliveries = await memory_queue.receive("c1")

        assert len(deliveries) == 1
        assert deliveries[0].delivery_id == message_id
        assert deliveries[0].message == _message()
        assert deliveries[0].redelivered is False
        assert memory_queue.pending_count == 1

    @pytest.mark.asyncio
    async def test_receive_respects_count(self, memory_queue) -> None:
        for i in range(3):
            await memory_queue.publish(_message(i))

        deliveries = await memory_queue.receive("c1", count=2)

        assert [d.message.document_id for d in deliveries] == [0, 1]
        assert memory_queue.ready_count == 1

    @pytest.mark.asyncio
    async def test_ack_clears_pending(self, memory_queue) -> None:
        await memory_queue.publish(_message())
        (delivery,) = await memory_queue.receive("c1")

        await memory_queue.ack(delivery)

        assert memory_queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_unacked_delivery_is_redelivered_after_visibility_timeout(self) -> None:
        queue = InMemoryWorkQueue(visibility_timeout_ms=20)
        await queue.publish(_message())
        (first,) = await queue.receive("c1")

        assert await queue.receive("c2", block_ms=0) == []
        await asyncio.sleep(0.05)
        (second,) = await queue.receive("c2", block_ms=0)

        assert second.delivery_id == first.delivery_id
        assert second.redelivered is True

    @pytest.mark.asyncio
    async def test_empty_receive_without_block_returns_immediately(self, memory_queue) -> None:
        assert await memory_queue.receive("c1", block_ms=0) == []

    @pytest.mark.asyncio
    async def test_empty_receive_times_out(self, memory_queue) -> None:
        assert await memory_queue.receive("c1", block_ms=20) == []

    @pytest.mark.asyncio
    async def test_dead_letter_is_recorded(self, memory_queue) -> None:
        delivery = QueueDelivery(delivery_id="mem-9", message=None, raw_payload="{bad")

        await memory_queue.dead_letter(delivery, "undecodable")

        assert memory_queue.dead_letters == [(delivery, "undecodable")]

    def test_provider_name(self, memory_queue) -> None:
        assert memory_queue.get_provider_name() == "memory"


# ======================================================================
# RedisStreamWorkQueue
# ======================================================================


class TestRedisTopology:
    @pytest.mark.asyncio
    async def test_creates_group_with_mkstream(self) -> None:
        client = AsyncMock()
        await _redis_queue(client).ensure_topology()

        client.xgroup_create.assert_awaited_once_with(STREAM, GROUP, id="0", mkstream=True)

    @pytest.mark.asyncio
    async def test_existing_group_is_not_an_error(self) -> None:
        client = AsyncMock()
        client.xgroup_create.side_effect = redis_exceptions.ResponseError(
            "BUSYGROUP Consumer Group name already exists"
        )

        await _redis_queue(client).ensure_topology()

    @pytest.mark.asyncio
    async def test_other_response_error_raises_store_error(self) -> None:
        client = AsyncMock()
        client.xgroup_create.side_effect = redis_exceptions.ResponseError("WRONGTYPE")

        with pytest.raises(StoreError):
            await _redis_queue(client).ensure_topology()

    @pytest.mark.asyncio
    async def test_connection_error_raises_store_error(self) -> None:
        client = AsyncMock()
        client.xgroup_create.side_effect = redis_exceptions.ConnectionError("refused")

        with pytest.raises(StoreError) as exc_info:
            await _redis_queue(client).ensure_topology()

        assert exc_info.value.provider_name == "redis_streams"


class TestRedisPublish:
    @pytest.mark.asyncio
    async def test_publish_adds_json_payload(self) -> None:
        client = AsyncMock()
        client.xadd.return_value = "1700000000000-0"

        message_id = await _redis_queue(client).publish(_message())

        assert message_id == "1700000000000-0"
        client.xadd.assert_awaited_once_with(
            STREAM, {"payload": _message().to_json()}, maxlen=1000, approximate=True
        )
        assert '"documentId":42' in _message().to_json()

    @pytest.mark.asyncio
    async def test_publish_failure_raises_queue_publish_error(self) -> None:
        client = AsyncMock()
        client.xadd.side_effect = redis_exceptions.ConnectionError("refused")

        with pytest.raises(QueuePublishError, match="document 42"):
            await _redis_queue(client).publish(_message())


class TestRedisReceive:
    @pytest.mark.asyncio
    async def test_reads_new_entries_when_nothing_to_reclaim(self) -> None:
        client = AsyncMock()
        client.xautoclaim.return_value = ["0-0", [], []]
        client.xreadgroup.return_value = [
            [STREAM, [("1-0", {"payload": _message().to_json()})]]
        ]

        deliveries = await _redis_queue(client).receive("worker-a", count=5)

        client.xautoclaim.assert_awaited_once_with(
            STREAM, GROUP, "worker-a", min_idle_time=60_000, start_id="0-0", count=5
        )
        client.xreadgroup.assert_awaited_once_with(
            groupname=GROUP,
            consumername="worker-a",
            streams={STREAM: ">"},
            count=5,
            block=100,
        )
        assert deliveries == [
            QueueDelivery(
                delivery_id="1-0",
                message=_message(),
                raw_payload=_message().to_json(),
                redelivered=False,
            )
        ]

    @pytest.mark.asyncio
    async def test_reclaimed_entries_take_priority(self) -> None:
        client = AsyncMock()
        client.xautoclaim.return_value = [
            "0-0",
            [("7-0", {"payload": _message(7).to_json()}), ("8-0", None)],
            [],
        ]

        deliveries = await _redis_queue(client).receive("worker-b")

        client.xreadgroup.assert_not_awaited()
        assert [d.delivery_id for d in deliveries] == ["7-0"]
        assert deliveries[0].redelivered is True

    @pytest.mark.asyncio
    async def test_explicit_block_overrides_default(self) -> None:
        client = AsyncMock()
        client.xautoclaim.return_value = ["0-0", []]
        client.xreadgroup.return_value = []

        assert await _redis_queue(client).receive("worker-a", block_ms=0) == []
        assert client.xreadgroup.await_args.kwargs["block"] == 0

    @pytest.mark.asyncio
    async def test_undecodable_payload_yields_empty_message(self) -> None:
        client = AsyncMock()
        client.xautoclaim.return_value = ["0-0", []]
        client.xreadgroup.return_value = [[STREAM, [("2-0", {"payload": "not json"})]]]

        (delivery,) = await _redis_queue(client).receive("worker-a")

        assert delivery.message is None
        assert delivery.raw_payload == "not json"

    @pytest.mark.asyncio
    async def test_read_failure_raises_store_error(self) -> None:
        client = AsyncMock()
        client.xautoclaim.side_effect = redis_exceptions.ConnectionError("refused")

        with pytest.raises(StoreError):
            await _redis_queue(client).receive("worker-a")


class TestRedisAckAndDeadLetter:
    @pytest.mark.asyncio
    async def test_ack_uses_group(self) -> None:
        client = AsyncMock()
        delivery = QueueDelivery(delivery_id="3-0", message=_message(), raw_payload="{}")

        await _redis_queue(client).ack(delivery)

        client.xack.assert_awaited_once_with(STREAM, GROUP, "3-0")

    @pytest.mark.asyncio
    async def test_dead_letter_copies_payload_and_reason(self) -> None:
        client = AsyncMock()
        delivery = QueueDelivery(delivery_id="4-0", message=None, raw_payload="garbage")

        await _redis_queue(client).dead_letter(delivery, "undecodable payload")

        client.xadd.assert_awaited_once_with(
            DLQ,
            {"payload": "garbage", "reason": "undecodable payload", "original_id": "4-0"},
            maxlen=1000,
            approximate=True,
        )

    @pytest.mark.asyncio
    async def test_ack_failure_raises_store_error(self) -> None:
        client = AsyncMock()
        client.xack.side_effect = redis_exceptions.TimeoutError("slow")
        delivery = QueueDelivery(delivery_id="5-0", message=_message(), raw_payload="{}")

        with pytest.raises(StoreError):
            await _redis_queue(client).ack(delivery)

    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        client = AsyncMock()
        queue = _redis_queue(client)

        await queue.close()

        client.aclose.assert_awaited_once()
        assert queue.get_provider_name() == "redis_streams"
