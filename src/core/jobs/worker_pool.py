"""Bounded pool of worker threads consuming the job queue."""

from __future__ import annotations

import threading

from aws_lambda_powertools import Logger, Metrics

from core.config import metrics_namespace
from core.jobs.processor import JobProcessor, metrics_lock
from core.models.errors import JobQueueError
from core.repositories.queue_repository import JobQueueRepository, ReceivedJob
from core.utils.constants import SQS_WAIT_TIME_SECONDS

logger = Logger(UTC=True)
metrics = Metrics(namespace=metrics_namespace())


class WorkerPool:
    """Runs ``size`` threads, each handling at most one job at a time.

    A worker long-polls for a single message, processes it and acknowledges
    it unless the processor reports the job as busy elsewhere, in which case
    the queue redelivers it after the visibility timeout.
    """

    def __init__(
        self,
        processor: JobProcessor,
        queue: JobQueueRepository,
        size: int,
        *,
        wait_seconds: int = SQS_WAIT_TIME_SECONDS,
        idle_sleep_seconds: float = 1.0,
    ) -> None:
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")

        self.processor = processor
        self.queue = queue
        self.size = size
        self.wait_seconds = wait_seconds
        self.idle_sleep_seconds = idle_sleep_seconds

        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Worker pool is already running")

        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._run_worker, name=f"image-worker-{i}", daemon=True)
            for i in range(self.size)
        ]
        for thread in self._threads:
            thread.start()

        logger.info("Worker pool started", extra={"size": self.size})

    def request_stop(self) -> None:
        """Signal workers to exit after their current job, without waiting."""
        self._stop.set()

    def stop(self, timeout: float | None = None) -> None:
        """Ask workers to finish their current job and exit, then wait for them."""
        self.request_stop()
        for thread in self._threads:
            thread.join(timeout)
        logger.info("Worker pool stopped", extra={"size": self.size})

    def run_forever(self) -> None:
        """Start the pool and block until ``request_stop`` is called (e.g. from a signal handler)."""
        self.start()
        try:
            while not self._stop.wait(timeout=1.0):
                pass
        finally:
            self.stop()

    def _run_worker(self) -> None:
        while not self._stop.is_set():
            try:
                self._poll_once()
            except Exception:
                logger.exception("Worker loop error")
                self._stop.wait(self.idle_sleep_seconds)

    def _poll_once(self) -> None:
        try:
            received = self.queue.receive(max_messages=1, wait_seconds=self.wait_seconds)
        except JobQueueError:
            logger.exception("Failed to receive jobs")
            self._stop.wait(self.idle_sleep_seconds)
            return

        if not received:
            self._stop.wait(self.idle_sleep_seconds)
            return

        for item in received:
            try:
                self._handle(item)
            finally:
                self._flush_metrics()

    def _handle(self, item: ReceivedJob) -> None:
        job = item.job
        try:
            outcome = self.processor.process(job)
        except Exception:
            # Left on the queue; redelivered after the visibility timeout
            logger.exception(
                "Unexpected error processing job",
                extra={"image_id": job.image_id, "attempt": job.attempt},
            )
            return

        logger.info(
            "Job processed",
            extra={"image_id": job.image_id, "attempt": job.attempt, "outcome": outcome.value},
        )

        if not outcome.acknowledges_message:
            return

        try:
            self.queue.acknowledge(receipt_handle=item.receipt_handle)
        except JobQueueError:
            logger.exception("Failed to acknowledge job", extra={"image_id": job.image_id})

    def _flush_metrics(self) -> None:
        try:
            with metrics_lock:
                metrics.flush_metrics(raise_on_empty_metrics=False)
        except Exception:
            logger.exception("Failed to flush metrics")
