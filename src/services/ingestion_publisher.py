"""Hand-off from document intake to the work queue.

After the metadata store has persisted a document (id assigned, status
``UPLOADED``), :class:`IngestionPublisher` publishes exactly one
:class:`~src.models.document.IndexMessage` for it.  A publish failure is a
hard error for the caller: the record stays ``UPLOADED`` and nothing is
enqueued.  There is no retry here; callers must not publish the same id
twice.
"""

from __future__ import annotations

import structlog

from src.interfaces.work_queue import IWorkQueue
from src.models.document import DocumentRecord, DocumentStatus, IndexMessage
from src.utils.errors import ClientValidationError, QueuePublishError

logger = structlog.get_logger(logger_name=__name__)


class IngestionPublisher:
    """Publishes one index-work message per persisted document.

    Parameters
    ----------
    work_queue:
        Durable queue the indexing workers consume from.  Its topology must
        already be provisioned.
    """

    def __init__(self, work_queue: IWorkQueue) -> None:
        self._queue = work_queue

    async def publish(self, record: DocumentRecord) -> str:
        """Publish the index message for *record* and return the message id.

        Raises
        ------
        ClientValidationError
            If the record has no id or is not in ``UPLOADED`` state.
        QueuePublishError
            If the queue rejected the message or could not be reached.
        """
        if record.id is None:
            raise ClientValidationError("Document must be persisted before it is queued")
        if record.status != DocumentStatus.UPLOADED:
            raise ClientValidationError(
                f"Document {record.id} is {record.status.value}, expected UPLOADED"
            )

        message = IndexMessage.from_record(record)
        try:
            message_id = await self._queue.publish(message)
        except QueuePublishError:
            logger.error("index_message_publish_failed", document_id=record.id)
            raise
        except Exception as exc:
            logger.error("index_message_publish_failed", document_id=record.id, error=str(exc))
            raise QueuePublishError(
                f"Failed to publish index message for document {record.id}: {exc}",
                provider_name=self._queue.get_provider_name(),
            ) from exc

        logger.info(
            "index_message_published",
            document_id=record.id,
            tenant_id=record.tenant_id,
            message_id=message_id,
        )
        return message_id
