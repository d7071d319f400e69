"""Abstract base class for the durable index-work queue.

The queue decouples document intake from indexing.  It must be durable and
deliver at least once: a delivery that is never acknowledged (worker crash,
lost connection) is handed out again after a visibility timeout, which is why
the indexing worker is idempotent.

Implementations may wrap Redis Streams, RabbitMQ, SQS, or an in-process
queue for local development.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from src.models.document import IndexMessage


@dataclass(frozen=True)
class QueueDelivery:
    """One message handed to a consumer.

    Attributes
    ----------
    delivery_id:
        Backend identifier used to acknowledge the delivery (e.g. a Redis
        stream entry id).
    message:
        The decoded message, or ``None`` when the payload could not be
        decoded (such deliveries are dead-lettered, never processed).
    raw_payload:
        The payload exactly as it was stored, kept for dead-lettering.
    redelivered:
        ``True`` when this delivery was reclaimed after a previous consumer
        failed to acknowledge it.
    """

    delivery_id: str
    message: IndexMessage | None
    raw_payload: str
    redelivered: bool = False


# Concrete implementations: RedisStreamWorkQueue, InMemoryWorkQueue
# Located in: src/providers/queue/
class IWorkQueue(ABC):
    """Contract for the at-least-once index-work channel."""

    @abstractmethod
    async def ensure_topology(self) -> None:
        """Declare the topic, queue and binding.

        Called explicitly at startup (API and worker) before any publish or
        consume; must be safe to call repeatedly.
        """

    @abstractmethod
    async def publish(self, message: IndexMessage) -> str:
        """Publish *message* under the fixed topic / routing key.

        Returns
        -------
        str
            Backend message id.

        Raises
        ------
        src.utils.errors.QueuePublishError
            If the broker rejects the message or is unreachable.
        """

    @abstractmethod
    async def receive(
        self,
        consumer: str,
        count: int = 10,
        block_ms: int | None = None,
    ) -> list[QueueDelivery]:
        """Pull up to *count* deliveries for *consumer*.

        Deliveries left unacknowledged past the visibility timeout are
        reclaimed before new messages are read.  Returns an empty list when
        nothing arrives within *block_ms*.
        """

    @abstractmethod
    async def ack(self, delivery: QueueDelivery) -> None:
        """Acknowledge *delivery* so it is never redelivered."""

    @abstractmethod
    async def dead_letter(self, delivery: QueueDelivery, reason: str) -> None:
        """Copy *delivery* to the dead-letter channel with *reason*.

        Does not acknowledge; callers ack separately.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
