"""In-process work queue for development and single-process deployments.

Keeps the same at-least-once contract as the Redis backend: received
deliveries stay pending until acknowledged, and a delivery left pending
longer than the visibility timeout is handed out again (marked
``redelivered``) by the next :meth:`receive`, the way the Redis backend reclaims idle
stream entries.  Nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque

import structlog
from pydantic import ValidationError

from src.interfaces.work_queue import IWorkQueue, QueueDelivery
from src.models.document import IndexMessage

logger = structlog.get_logger(logger_name=__name__)


class InMemoryWorkQueue(IWorkQueue):
    """Deque-backed queue with a pending list and a dead-letter list."""

    def __init__(self, visibility_timeout_ms: int = 300_000) -> None:
        self._visibility_timeout = max(0, visibility_timeout_ms) / 1000
        self._ready: deque[tuple[str, str, bool]] = deque()
        # message id -> (raw payload, monotonic time it was handed out)
        self._pending: dict[str, tuple[str, float]] = {}
        self._dead_letters: list[tuple[QueueDelivery, str]] = []
        self._ids = itertools.count(1)
        self._arrived = asyncio.Event()

    # ------------------------------------------------------------------
    # IWorkQueue implementation
    # ------------------------------------------------------------------

    async def ensure_topology(self) -> None:
        logger.debug("memory_queue_ready")

    async def publish(self, message: IndexMessage) -> str:
        message_id = f"mem-{next(self._ids)}"
        self._ready.append((message_id, message.to_json(), False))
        self._arrived.set()
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
        self._reclaim_idle()
        if not self._ready and block_ms:
            self._arrived.clear()
            try:
                await asyncio.wait_for(self._arrived.wait(), timeout=block_ms / 1000)
            except asyncio.TimeoutError:
                return []

        deliveries: list[QueueDelivery] = []
        while self._ready and len(deliveries) < count:
            message_id, raw, redelivered = self._ready.popleft()
            self._pending[message_id] = (raw, time.monotonic())
            try:
                message: IndexMessage | None = IndexMessage.from_json(raw)
            except ValidationError:
                message = None
            deliveries.append(
                QueueDelivery(
                    delivery_id=message_id,
                    message=message,
                    raw_payload=raw,
                    redelivered=redelivered,
                )
            )
        return deliveries

    async def ack(self, delivery: QueueDelivery) -> None:
        self._pending.pop(delivery.delivery_id, None)

    async def dead_letter(self, delivery: QueueDelivery, reason: str) -> None:
        self._dead_letters.append((delivery, reason))
        logger.warning(
            "queue_message_dead_lettered", delivery_id=delivery.delivery_id, reason=reason
        )

    async def close(self) -> None:
        self._ready.clear()
        self._pending.clear()

    def get_provider_name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Reclaim and inspection
    # ------------------------------------------------------------------

    def _reclaim_idle(self) -> None:
        deadline = time.monotonic() - self._visibility_timeout
        stale = [mid for mid, (_, handed_out) in self._pending.items() if handed_out <= deadline]
        for message_id in reversed(stale):
            raw, _ = self._pending.pop(message_id)
            self._ready.appendleft((message_id, raw, True))
        if stale:
            logger.info("queue_messages_reclaimed", count=len(stale))

    @property
    def ready_count(self) -> int:
        return len(self._ready)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def dead_letters(self) -> list[tuple[QueueDelivery, str]]:
        return list(self._dead_letters)
