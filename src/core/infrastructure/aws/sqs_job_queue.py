"""SQS-backed implementation of JobQueueRepository."""

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from core.config import ServiceSettings
from core.infrastructure.adapters.sqs_adapter import SQSAdapter, SQSAdapterProtocol
from core.models.errors import JobQueueError
from core.models.job import Job
from core.repositories.queue_repository import JobQueueRepository, ReceivedJob
from core.utils.constants import SQS_MAX_DELAY_SECONDS, SQS_MAX_RECEIVE_BATCH

logger = Logger(UTC=True)


class SQSJobQueue(JobQueueRepository):
    """Job queue backed by a standard SQS queue.

    SQS delivers at least once; the job processor's claim makes duplicate
    deliveries harmless.
    """

    def __init__(
        self,
        adapter: SQSAdapterProtocol | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        self._sqs: SQSAdapterProtocol = adapter or SQSAdapter(settings)

    def enqueue(self, *, job: Job, delay_seconds: int = 0) -> str:
        delay = max(0, min(int(delay_seconds), SQS_MAX_DELAY_SECONDS))

        try:
            message_id = self._sqs.send_message(body=job.to_message(), delay_seconds=delay)
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "SQS send_message failed",
                extra={"image_id": job.image_id, "attempt": job.attempt, "error": str(exc)},
            )
            raise JobQueueError(
                message="Unable to schedule image processing",
                details={"image_id": job.image_id},
            ) from exc

        logger.info(
            "Job enqueued",
            extra={
                "image_id": job.image_id,
                "attempt": job.attempt,
                "delay_seconds": delay,
                "message_id": message_id,
            },
        )
        return message_id

    def receive(self, *, max_messages: int = 1, wait_seconds: int = 0) -> list[ReceivedJob]:
        try:
            messages = self._sqs.receive_messages(
                max_messages=max(1, min(max_messages, SQS_MAX_RECEIVE_BATCH)),
                wait_seconds=wait_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("SQS receive_message failed", extra={"error": str(exc)})
            raise JobQueueError(message="Unable to receive jobs") from exc

        received: list[ReceivedJob] = []
        for message in messages:
            receipt_handle = message["ReceiptHandle"]
            try:
                job = Job.from_message(message["Body"])
            except PydanticValidationError:
                # Never decodable, so redelivery can't help
                logger.error(
                    "Dropping malformed job message",
                    extra={"message_id": message.get("MessageId")},
                )
                self.acknowledge(receipt_handle=receipt_handle)
                continue

            received.append(
                ReceivedJob(
                    job=job,
                    receipt_handle=receipt_handle,
                    message_id=str(message.get("MessageId", "")),
                )
            )

        return received

    def acknowledge(self, *, receipt_handle: str) -> None:
        try:
            self._sqs.delete_message(receipt_handle=receipt_handle)
        except (ClientError, BotoCoreError) as exc:
            logger.error("SQS delete_message failed", extra={"error": str(exc)})
            raise JobQueueError(message="Unable to acknowledge job") from exc
