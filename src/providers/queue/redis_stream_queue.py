"""Redis Streams work queue.

Maps the exchange / queue / binding topology onto Redis Streams:

    exchange + routing key  →  stream key   ``document.exchange:document.index``
    queue                   →  consumer group ``document.index.queue``
    dead letters            →  stream key   ``document.exchange:document.index:dlq``

Each stream entry carries the camelCase JSON message in a single ``payload``
field.  Unacknowledged entries stay in the group's pending list; once they
have been idle longer than the visibility timeout, :meth:`receive` reclaims
them with ``XAUTOCLAIM`` before reading new entries, which gives
at-least-once delivery across consumer crashes.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError
from redis import exceptions as redis_exceptions
from redis.asyncio import Redis

from src.interfaces.work_queue import IWorkQueue, QueueDelivery
from src.models.document import IndexMessage
from src.utils.errors import QueuePublishError, StoreError

logger = structlog.get_logger(logger_name=__name__)

_PROVIDER = "redis_streams"
_PAYLOAD_FIELD = "payload"


class RedisStreamWorkQueue(IWorkQueue):
    """At-least-once work queue on a Redis Stream consumer group.

    Parameters
    ----------
    redis_url:
        Connection URL, e.g. ``redis://localhost:6379/0``.
    stream_key:
        Stream that plays the role of exchange + routing key.
    group_name:
        Consumer group that plays the role of the durable queue.
    dead_letter_key:
        Stream receiving copies of messages that failed terminally.
    visibility_timeout_ms:
        Idle time after which a pending entry is handed to another consumer.
    block_ms:
        Default ``XREADGROUP`` block time.
    max_length:
        Approximate ``MAXLEN`` trim applied on every ``XADD``.
    client:
        Pre-built ``redis.asyncio.Redis`` (tests pass a mock).
    """

    def __init__(
        self,
        redis_url: str,
        stream_key: str,
        group_name: str,
        dead_letter_key: str,
        visibility_timeout_ms: int = 300_000,
        block_ms: int = 5_000,
        max_length: int = 100_000,
        client: Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._stream_key = stream_key
        self._group_name = group_name
        self._dead_letter_key = dead_letter_key
        self._visibility_timeout_ms = visibility_timeout_ms
        self._block_ms = block_ms
        self._max_length = max_length
        self._client = client

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def ensure_topology(self) -> None:
        """Create the consumer group (and the stream) if missing."""
        try:
            await self.client.xgroup_create(
                self._stream_key, self._group_name, id="0", mkstream=True
            )
        except redis_exceptions.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise StoreError(
                    f"Failed to provision consumer group: {exc}", provider_name=_PROVIDER
                ) from exc
            logger.debug("queue_group_exists", stream=self._stream_key, group=self._group_name)
            return
        except redis_exceptions.RedisError as exc:
            raise StoreError(
                f"Failed to provision queue topology: {exc}", provider_name=_PROVIDER
            ) from exc
        logger.info("queue_topology_declared", stream=self._stream_key, group=self._group_name)

    async def publish(self, message: IndexMessage) -> str:
        try:
            message_id = await self.client.xadd(
                self._stream_key,
                {_PAYLOAD_FIELD: message.to_json()},
                maxlen=self._max_length,
                approximate=True,
            )
        except redis_exceptions.RedisError as exc:
            raise QueuePublishError(
                f"Failed to publish index message for document {message.document_id}: {exc}",
                provider_name=_PROVIDER,
            ) from exc
        logger.debug(
            "queue_message_published", message_id=message_id, document_id=message.document_id
        )
        return message_id

    async def receive(
        self,
        consumer: str,
        count: int = 10,
        block_ms: int | None = None,
    ) -> list[QueueDelivery]:
        try:
            reclaimed = await self._reclaim_idle(consumer, count)
            if reclaimed:
                return reclaimed

            response = await self.client.xreadgroup(
                groupname=self._group_name,
                consumername=consumer,
                streams={self._stream_key: ">"},
                count=count,
                block=self._block_ms if block_ms is None else block_ms,
            )
        except redis_exceptions.RedisError as exc:
            raise StoreError(f"Failed to read work queue: {exc}", provider_name=_PROVIDER) from exc

        deliveries: list[QueueDelivery] = []
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                deliveries.append(self._to_delivery(entry_id, fields))
        return deliveries

    async def ack(self, delivery: QueueDelivery) -> None:
        try:
            await self.client.xack(self._stream_key, self._group_name, delivery.delivery_id)
        except redis_exceptions.RedisError as exc:
            raise StoreError(
                f"Failed to acknowledge {delivery.delivery_id}: {exc}", provider_name=_PROVIDER
            ) from exc

    async def dead_letter(self, delivery: QueueDelivery, reason: str) -> None:
        try:
            await self.client.xadd(
                self._dead_letter_key,
                {
                    _PAYLOAD_FIELD: delivery.raw_payload,
                    "reason": reason,
                    "original_id": delivery.delivery_id,
                },
                maxlen=self._max_length,
                approximate=True,
            )
        except redis_exceptions.RedisError as exc:
            raise StoreError(
                f"Failed to dead-letter {delivery.delivery_id}: {exc}", provider_name=_PROVIDER
            ) from exc
        logger.warning(
            "queue_message_dead_lettered", delivery_id=delivery.delivery_id, reason=reason
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def get_provider_name(self) -> str:
        return _PROVIDER

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _reclaim_idle(self, consumer: str, count: int) -> list[QueueDelivery]:
        """Take over pending entries whose consumer stopped acknowledging."""
        response = await self.client.xautoclaim(
            self._stream_key,
            self._group_name,
            consumer,
            min_idle_time=self._visibility_timeout_ms,
            start_id="0-0",
            count=count,
        )
        # [next_start_id, [(id, fields), ...]] plus deleted ids on Redis >= 7
        claimed = response[1] if response and len(response) > 1 else []
        deliveries = [
            self._to_delivery(entry_id, fields, redelivered=True)
            for entry_id, fields in claimed
            if fields
        ]
        if deliveries:
            logger.info("queue_messages_reclaimed", consumer=consumer, count=len(deliveries))
        return deliveries

    @staticmethod
    def _to_delivery(
        entry_id: str,
        fields: dict[str, Any],
        redelivered: bool = False,
    ) -> QueueDelivery:
        raw = fields.get(_PAYLOAD_FIELD, "")
        try:
            message: IndexMessage | None = IndexMessage.from_json(raw)
        except ValidationError:
            logger.error("queue_payload_undecodable", delivery_id=entry_id)
            message = None
        return QueueDelivery(
            delivery_id=entry_id,
            message=message,
            raw_payload=raw,
            redelivered=redelivered,
        )
