"""Job processor: runs one job through the pending -> terminal state machine.

Every status change is a conditional write in the metadata store:

- a claim succeeds only for a ``pending`` image without a live claim, so
  two deliveries of the same job never run the engine concurrently
- completion requires the caller's claim token, so a worker whose lease
  expired cannot overwrite a newer outcome
- every terminal transition requires ``pending``, so terminal states stick
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable

from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit

from core.config import ServiceSettings, get_settings, metrics_namespace
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.infrastructure.aws.s3_image_storage import S3ImageStorage
from core.infrastructure.aws.sqs_job_queue import SQSJobQueue
from core.jobs.backoff import backoff_seconds, queue_delay_seconds
from core.models.errors import (
    MetadataOperationFailedError,
    NotFoundError,
    StorageError,
    TransformError,
    TransientError,
)
from core.models.job import Job, JobOutcome
from core.processing.transform_engine import TransformEngine
from core.repositories.metadata_repository import ImageMetadataRepository
from core.repositories.queue_repository import JobQueueRepository
from core.repositories.storage_repository import ImageStorageRepository, build_storage_key
from core.utils.constants import (
    ERROR_CODE_MAX_ATTEMPTS_EXCEEDED,
    MIME_TYPE_EXTENSION_MAP,
    PROCESSED_PREFIX,
)
from core.utils.time import epoch_seconds

logger = Logger(UTC=True)
metrics = Metrics(namespace=metrics_namespace())
# Metric storage is shared across threads; held by anyone adding or flushing
metrics_lock = threading.Lock()

RETRYABLE_ERRORS = (TransientError, NotFoundError, TimeoutError, ConnectionError)


class JobProcessor:
    """Processes a single job delivery and reports what happened."""

    def __init__(
        self,
        *,
        metadata: ImageMetadataRepository | None = None,
        storage: ImageStorageRepository | None = None,
        queue: JobQueueRepository | None = None,
        engine: TransformEngine | None = None,
        settings: ServiceSettings | None = None,
        clock: Callable[[], int] = epoch_seconds,
    ) -> None:
        self.settings = settings or get_settings()
        self.metadata = metadata or DynamoDBMetadata(settings=self.settings)
        self.storage = storage or S3ImageStorage(settings=self.settings)
        self.queue = queue or SQSJobQueue(settings=self.settings)
        self.engine = engine or TransformEngine.from_settings(self.settings)
        self._clock = clock

    def process(self, job: Job) -> JobOutcome:
        log_extra = {"image_id": job.image_id, "attempt": job.attempt}
        claim_token = uuid.uuid4().hex

        record = self.metadata.claim_job(
            image_id=job.image_id,
            claim_token=claim_token,
            attempt=job.attempt,
            now=self._clock(),
            lease_seconds=self.settings.job_claim_ttl_seconds,
        )
        if record is None:
            outcome = self._refused_claim_outcome(job)
            logger.info("Job not claimed", extra={**log_extra, "outcome": outcome.value})
            return outcome

        logger.info("Job claimed", extra=log_extra)

        try:
            original = self.storage.download_image(key=job.original_storage_key)
            result = self.engine.apply(original, job.request)

            processed_key = build_storage_key(
                prefix=PROCESSED_PREFIX,
                owner_id=job.owner_id,
                image_id=job.image_id,
                extension=MIME_TYPE_EXTENSION_MAP[result.content_type],
            )
            processed_url = self.storage.put_image(
                key=processed_key,
                file_data=result.data,
                content_type=result.content_type,
                metadata={"image-id": job.image_id, "owner-id": job.owner_id},
            )

            completed = self.metadata.complete_job(
                image_id=job.image_id,
                claim_token=claim_token,
                processed_storage_key=processed_key,
                processed_url=processed_url,
                processed_width=result.width,
                processed_height=result.height,
            )

        except TransformError as exc:
            logger.warning(
                "Transform failed permanently",
                extra={**log_extra, "error_code": exc.error_code},
            )
            return self._fail(job, claim_token, exc.error_code)

        except RETRYABLE_ERRORS as exc:
            logger.warning(
                "Transient failure processing job",
                extra={**log_extra, "error": str(exc), "error_type": type(exc).__name__},
            )
            return self._retry_or_fail(job, claim_token)

        except Exception:
            self._release(job, claim_token)
            raise

        if completed:
            logger.info(
                "Job completed",
                extra={**log_extra, "processed_key": processed_key},
            )
            _count_metric("JobsCompleted")
            return JobOutcome.COMPLETED

        return self._lost_completion_outcome(job, processed_key)

    def _refused_claim_outcome(self, job: Job) -> JobOutcome:
        current = self.metadata.fetch_image(image_id=job.image_id)
        if current is None:
            return JobOutcome.DISCARDED
        if current.processing_status.is_terminal:
            return JobOutcome.SKIPPED
        return JobOutcome.BUSY

    def _lost_completion_outcome(self, job: Job, processed_key: str) -> JobOutcome:
        current = self.metadata.fetch_image(image_id=job.image_id)
        if current is not None:
            # Claim lost to another worker, which owns the result under the same key
            logger.warning("Job claim lost before completion", extra={"image_id": job.image_id})
            return JobOutcome.SKIPPED

        logger.info(
            "Image deleted during processing; discarding result",
            extra={"image_id": job.image_id},
        )
        try:
            self.storage.remove_image(key=processed_key)
        except StorageError:
            logger.exception(
                "Failed to remove orphaned processed image",
                extra={"image_id": job.image_id, "key": processed_key},
            )
        return JobOutcome.DISCARDED

    def _fail(self, job: Job, claim_token: str, reason: str) -> JobOutcome:
        if self.metadata.fail_job(image_id=job.image_id, reason=reason, claim_token=claim_token):
            logger.info(
                "Job failed",
                extra={"image_id": job.image_id, "attempt": job.attempt, "reason": reason},
            )
            _count_metric("JobsFailed")
            return JobOutcome.FAILED

        if self.metadata.fetch_image(image_id=job.image_id) is None:
            return JobOutcome.DISCARDED
        return JobOutcome.SKIPPED

    def _retry_or_fail(self, job: Job, claim_token: str) -> JobOutcome:
        if job.attempt >= self.settings.max_job_attempts:
            return self._fail(job, claim_token, ERROR_CODE_MAX_ATTEMPTS_EXCEEDED)

        delay = queue_delay_seconds(
            backoff_seconds(
                job.attempt,
                base_seconds=self.settings.backoff_base_seconds,
                max_seconds=self.settings.backoff_max_seconds,
            )
        )

        try:
            self.queue.enqueue(job=job.next_attempt(), delay_seconds=delay)
        finally:
            # An enqueue failure propagates and leaves this delivery on the queue
            self._release(job, claim_token)

        logger.info(
            "Job retry scheduled",
            extra={
                "image_id": job.image_id,
                "next_attempt": job.attempt + 1,
                "delay_seconds": delay,
            },
        )
        _count_metric("JobsRetried")
        return JobOutcome.RETRY_SCHEDULED

    def _release(self, job: Job, claim_token: str) -> None:
        try:
            self.metadata.release_job(image_id=job.image_id, claim_token=claim_token)
        except MetadataOperationFailedError:
            # The lease still expires on its own
            logger.exception("Failed to release job claim", extra={"image_id": job.image_id})


def _count_metric(name: str) -> None:
    with metrics_lock:
        metrics.add_metric(name=name, unit=MetricUnit.Count, value=1)
