"""
SQS-triggered Lambda handler that runs image transform jobs.

Each SQS record carries one job. Records whose job is held by another
worker are reported as batch item failures so SQS redelivers them; every
other outcome removes the record from the queue.
"""

from functools import lru_cache
from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.batch import (
    BatchProcessor,
    EventType,
    process_partial_response,
)
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError as PydanticValidationError

from core.config import metrics_namespace
from core.jobs.processor import JobProcessor
from core.models.job import Job, JobOutcome

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics(namespace=metrics_namespace())

batch_processor = BatchProcessor(event_type=EventType.SQS)


class JobBusyError(Exception):
    """Raised to hand a record back to SQS for later redelivery."""


@lru_cache(maxsize=1)
def get_job_processor() -> JobProcessor:
    return JobProcessor()


@tracer.capture_method
def record_handler(record: SQSRecord) -> JobOutcome | None:
    try:
        job = Job.from_message(record.body)
    except PydanticValidationError:
        # Never decodable, so redelivery can't help
        logger.error("Dropping malformed job message", extra={"message_id": record.message_id})
        return None

    outcome = get_job_processor().process(job)

    logger.info(
        "Job processed",
        extra={
            "image_id": job.image_id,
            "attempt": job.attempt,
            "outcome": outcome.value,
            "message_id": record.message_id,
        },
    )

    if not outcome.acknowledges_message:
        raise JobBusyError(f"Job for image {job.image_id} is being processed elsewhere")

    return outcome


@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Process a batch of job messages, reporting partial batch failures."""
    logger.info(
        "Received job batch",
        extra={
            "records": len(event.get("Records", [])),
            "request_id": getattr(context, "aws_request_id", None),
        },
    )

    return process_partial_response(
        event=event,
        record_handler=record_handler,
        processor=batch_processor,
        context=context,
    )
