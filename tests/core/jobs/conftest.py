from collections.abc import Callable

import pytest

from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.models.image import ProcessingStatus
from core.models.job import Job
from core.models.transform import TransformRequest


@pytest.fixture
def metadata(aws_stack) -> DynamoDBMetadata:
    return DynamoDBMetadata()


@pytest.fixture
def seed_pending_job(
    metadata,
    make_record,
    s3_put_object,
    jpeg_1000x800,
) -> Callable[..., Job]:
    """
    Store an original plus a pending record and return the job for it.

    Usage:
        job = seed_pending_job(TransformRequest(resize_width=300))
    """

    def _seed(
        request: TransformRequest | None = None,
        *,
        image_id: str = "img_job1",
        original: bytes | None = None,
        attempt: int = 1,
    ) -> Job:
        request = request or TransformRequest(resize_width=300)
        record = make_record(
            image_id=image_id,
            processing_status=ProcessingStatus.PENDING,
            transform_request=request.to_json(),
        )
        s3_put_object(record.original_storage_key, original or jpeg_1000x800, "image/jpeg")
        metadata.create_image(record=record, quota=20)

        return Job(
            image_id=record.image_id,
            owner_id=record.owner_id,
            original_storage_key=record.original_storage_key,
            content_type=record.content_type,
            request=request,
            attempt=attempt,
        )

    return _seed
