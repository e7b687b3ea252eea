import threading
import time
from collections import Counter

from unittest.mock import patch

import pytest
from aws_lambda_powertools import Metrics

from core.config import ServiceSettings, metrics_namespace
from core.jobs import worker_pool
from core.jobs.processor import JobProcessor, _count_metric
from core.jobs.worker_pool import WorkerPool
from core.models.errors import JobQueueError
from core.models.image import ImageRecord, ProcessingStatus
from core.models.job import Job, JobOutcome
from core.models.transform import TransformRequest
from core.processing.transform_engine import TransformEngine
from core.repositories.metadata_repository import ImageMetadataRepository
from core.repositories.queue_repository import JobQueueRepository, ReceivedJob
from core.repositories.storage_repository import ImageStorageRepository


def make_job(image_id: str, attempt: int = 1) -> Job:
    return Job(
        image_id=image_id,
        owner_id="owner-1",
        original_storage_key=f"originals/owner-1/{image_id}.png",
        content_type="image/png",
        request=TransformRequest(resize_width=10),
        attempt=attempt,
    )


def wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class FakeQueue(JobQueueRepository):
    """In-memory queue; unacknowledged messages are not redelivered."""

    def __init__(self, jobs: list[Job] | None = None) -> None:
        self._lock = threading.Lock()
        self._pending = [
            ReceivedJob(job=job, receipt_handle=f"rh-{i}", message_id=f"m-{i}")
            for i, job in enumerate(jobs or [])
        ]
        self.acknowledged: list[str] = []
        self.enqueued: list[tuple[Job, int]] = []
        self.fail_receive = False

    def enqueue(self, *, job: Job, delay_seconds: int = 0) -> str:
        with self._lock:
            self.enqueued.append((job, delay_seconds))
        return "m-retry"

    def receive(self, *, max_messages: int = 1, wait_seconds: int = 0) -> list[ReceivedJob]:
        if self.fail_receive:
            raise JobQueueError(message="SQS unavailable")
        with self._lock:
            batch, self._pending = self._pending[:max_messages], self._pending[max_messages:]
        return batch

    def acknowledge(self, *, receipt_handle: str) -> None:
        with self._lock:
            self.acknowledged.append(receipt_handle)


class RecordingProcessor:
    """Tracks how many jobs run at once."""

    def __init__(self, outcome: JobOutcome = JobOutcome.COMPLETED, delay: float = 0.02) -> None:
        self.outcome = outcome
        self.delay = delay
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.processed: Counter[str] = Counter()

    def process(self, job: Job) -> JobOutcome:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
            self.processed[job.image_id] += 1
        return self.outcome


class InMemoryMetadata(ImageMetadataRepository):
    """Thread-safe metadata store with the same conditional semantics as DynamoDB."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: dict[str, ImageRecord] = {}

    def create_image(self, *, record: ImageRecord, quota: int) -> None:
        with self._lock:
            self.records[record.image_id] = record

    def fetch_image(self, *, image_id: str) -> ImageRecord | None:
        with self._lock:
            return self.records.get(image_id)

    def delete_image(self, *, image_id: str, owner_id: str) -> bool:
        with self._lock:
            return self.records.pop(image_id, None) is not None

    def list_owner_images(self, *, owner_id: str) -> list[ImageRecord]:
        with self._lock:
            return [r for r in self.records.values() if r.owner_id == owner_id]

    def count_owner_images(self, *, owner_id: str) -> int:
        return len(self.list_owner_images(owner_id=owner_id))

    def claim_job(self, *, image_id, claim_token, attempt, now, lease_seconds):
        with self._lock:
            record = self.records.get(image_id)
            if record is None or record.processing_status is not ProcessingStatus.PENDING:
                return None
            if record.claim_token and (record.claim_expires_at or 0) >= now:
                return None
            record = record.model_copy(
                update={
                    "claim_token": claim_token,
                    "claim_expires_at": now + lease_seconds,
                    "attempt_count": attempt,
                }
            )
            self.records[image_id] = record
            return record

    def release_job(self, *, image_id: str, claim_token: str) -> bool:
        with self._lock:
            record = self.records.get(image_id)
            if record is None or record.claim_token != claim_token:
                return False
            self.records[image_id] = record.model_copy(
                update={"claim_token": None, "claim_expires_at": None}
            )
            return True

    def complete_job(self, *, image_id, claim_token, processed_storage_key, processed_url,
                     processed_width, processed_height) -> bool:
        with self._lock:
            record = self.records.get(image_id)
            if (
                record is None
                or record.claim_token != claim_token
                or record.processing_status is not ProcessingStatus.PENDING
            ):
                return False
            self.records[image_id] = record.model_copy(
                update={
                    "processing_status": ProcessingStatus.COMPLETED,
                    "processed_storage_key": processed_storage_key,
                    "processed_url": processed_url,
                    "processed_width": processed_width,
                    "processed_height": processed_height,
                    "claim_token": None,
                    "claim_expires_at": None,
                }
            )
            return True

    def fail_job(self, *, image_id: str, reason: str, claim_token: str | None = None) -> bool:
        with self._lock:
            record = self.records.get(image_id)
            if record is None or record.processing_status is not ProcessingStatus.PENDING:
                return False
            if claim_token is not None and record.claim_token != claim_token:
                return False
            self.records[image_id] = record.model_copy(
                update={"processing_status": ProcessingStatus.FAILED, "failure_reason": reason}
            )
            return True


class InMemoryStorage(ImageStorageRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.objects: dict[str, bytes] = {}

    def put_image(self, *, key, file_data, content_type, metadata=None) -> str:
        with self._lock:
            self.objects[key] = file_data
        return self.object_url(key=key)

    def download_image(self, *, key: str) -> bytes:
        with self._lock:
            return self.objects[key]

    def remove_image(self, *, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def object_url(self, *, key: str) -> str:
        return f"memory://{key}"


class CountingEngine(TransformEngine):
    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self.executions: Counter[str] = Counter()

    def apply(self, data, request):
        result = super().apply(data, request)
        # Widen the window in which a second worker could slip in
        time.sleep(0.05)
        with self._lock:
            self.executions[request.to_json()] += 1
        return result


class TestWorkerPool:
    def test_rejects_empty_pool(self) -> None:
        with pytest.raises(ValueError):
            WorkerPool(RecordingProcessor(), FakeQueue(), 0)

    def test_processes_and_acknowledges_every_job(self) -> None:
        jobs = [make_job(f"img_{i}") for i in range(12)]
        queue = FakeQueue(jobs)
        processor = RecordingProcessor()
        pool = WorkerPool(processor, queue, 3, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: len(queue.acknowledged) == 12)
        finally:
            pool.stop(timeout=5)

        assert sorted(processor.processed) == sorted(job.image_id for job in jobs)
        assert set(processor.processed.values()) == {1}
        assert not pool.running

    def test_concurrency_bounded_by_pool_size(self) -> None:
        queue = FakeQueue([make_job(f"img_{i}") for i in range(16)])
        processor = RecordingProcessor(delay=0.05)
        pool = WorkerPool(processor, queue, 4, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: len(queue.acknowledged) == 16)
        finally:
            pool.stop(timeout=5)

        assert 1 < processor.max_active <= 4

    def test_busy_jobs_are_not_acknowledged(self) -> None:
        queue = FakeQueue([make_job("img_busy")])
        processor = RecordingProcessor(outcome=JobOutcome.BUSY)
        pool = WorkerPool(processor, queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: processor.processed["img_busy"] == 1)
        finally:
            pool.stop(timeout=5)

        assert queue.acknowledged == []

    def test_processor_crash_leaves_message_and_keeps_running(self) -> None:
        class CrashingProcessor(RecordingProcessor):
            def process(self, job: Job) -> JobOutcome:
                if job.image_id == "img_crash":
                    raise RuntimeError("bug")
                return super().process(job)

        queue = FakeQueue([make_job("img_crash"), make_job("img_ok")])
        processor = CrashingProcessor()
        pool = WorkerPool(processor, queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: queue.acknowledged == ["rh-1"])
        finally:
            pool.stop(timeout=5)

        assert processor.processed["img_ok"] == 1

    def test_survives_receive_errors(self) -> None:
        queue = FakeQueue([make_job("img_1")])
        queue.fail_receive = True
        pool = WorkerPool(RecordingProcessor(), queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            time.sleep(0.05)
            assert pool.running
            queue.fail_receive = False
            assert wait_for(lambda: queue.acknowledged == ["rh-0"])
        finally:
            pool.stop(timeout=5)

    def test_metrics_flush_without_namespace_env(self, monkeypatch) -> None:
        monkeypatch.delenv("POWERTOOLS_METRICS_NAMESPACE", raising=False)
        monkeypatch.setattr(worker_pool, "metrics", Metrics(namespace=metrics_namespace()))

        class CountingProcessor(RecordingProcessor):
            def process(self, job: Job) -> JobOutcome:
                _count_metric("JobsCompleted")
                return super().process(job)

        queue = FakeQueue([make_job("img_1"), make_job("img_2")])
        pool = WorkerPool(CountingProcessor(), queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: queue.acknowledged == ["rh-0", "rh-1"])
            assert pool.running
        finally:
            pool.stop(timeout=5)

    def test_flush_failure_still_acknowledges(self) -> None:
        queue = FakeQueue([make_job("img_1"), make_job("img_2")])
        pool = WorkerPool(RecordingProcessor(), queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        with patch.object(worker_pool.metrics, "flush_metrics", side_effect=RuntimeError("boom")):
            pool.start()
            try:
                assert wait_for(lambda: queue.acknowledged == ["rh-0", "rh-1"])
                assert pool.running
            finally:
                pool.stop(timeout=5)

    def test_unexpected_receive_error_keeps_worker_alive(self) -> None:
        queue = FakeQueue([make_job("img_1")])
        calls = []
        original_receive = queue.receive

        def flaky_receive(**kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise KeyError("unexpected")
            return original_receive(**kwargs)

        queue.receive = flaky_receive
        pool = WorkerPool(RecordingProcessor(), queue, 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            assert wait_for(lambda: queue.acknowledged == ["rh-0"])
            assert pool.running
        finally:
            pool.stop(timeout=5)

    def test_cannot_start_twice(self) -> None:
        pool = WorkerPool(RecordingProcessor(), FakeQueue(), 1, wait_seconds=0, idle_sleep_seconds=0.01)

        pool.start()
        try:
            with pytest.raises(RuntimeError):
                pool.start()
        finally:
            pool.stop(timeout=5)

    def test_run_forever_returns_after_request_stop(self) -> None:
        pool = WorkerPool(RecordingProcessor(), FakeQueue(), 2, wait_seconds=0, idle_sleep_seconds=0.01)
        threading.Timer(0.1, pool.request_stop).start()

        pool.run_forever()

        assert not pool.running


def test_duplicate_deliveries_execute_once(make_image) -> None:
    """Concurrent deliveries of one job run the transform exactly once."""
    metadata = InMemoryMetadata()
    storage = InMemoryStorage()
    engine = CountingEngine()
    job = make_job("img_dup")

    storage.put_image(
        key=job.original_storage_key,
        file_data=make_image("PNG", (40, 20)),
        content_type="image/png",
    )
    metadata.create_image(
        record=ImageRecord(
            image_id=job.image_id,
            owner_id=job.owner_id,
            file_name="dup.png",
            content_type="image/png",
            size_bytes=100,
            original_storage_key=job.original_storage_key,
            original_url=storage.object_url(key=job.original_storage_key),
            width=40,
            height=20,
            processing_status=ProcessingStatus.PENDING,
            transform_request=job.request.to_json(),
            uploaded_at="2024-01-01T00:00:00+00:00",
        ),
        quota=20,
    )

    queue = FakeQueue([job, job, job, job])
    processor = JobProcessor(
        metadata=metadata,
        storage=storage,
        queue=queue,
        engine=engine,
        settings=ServiceSettings(),
    )
    pool = WorkerPool(processor, queue, 4, wait_seconds=0, idle_sleep_seconds=0.01)

    pool.start()
    try:
        assert wait_for(
            lambda: metadata.fetch_image(image_id=job.image_id).processing_status
            is ProcessingStatus.COMPLETED
        )
        # Let the remaining deliveries finish
        time.sleep(0.2)
    finally:
        pool.stop(timeout=5)

    record = metadata.fetch_image(image_id=job.image_id)
    assert sum(engine.executions.values()) == 1
    assert record.processed_width == 10
    assert "processed/owner-1/img_dup.png" in storage.objects
