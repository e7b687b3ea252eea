import json
from typing import Any
from unittest.mock import patch

from core.config import ServiceSettings
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.models.errors import StorageError
from core.models.image import ProcessingStatus
from handlers.delete_image.handler import handler
from handlers.delete_image.service import DeleteService


def parse_body(response: dict[str, Any]) -> dict[str, Any]:
    return json.loads(response["body"])


def test_deletes_objects_record_and_quota_slot(
    seed_image, delete_image_event, lambda_context, s3_object_exists
) -> None:
    record = seed_image(
        processing_status=ProcessingStatus.COMPLETED,
        processed_storage_key="processed/owner-1/img_test1.jpg",
        processed_url="https://test-image-bucket.s3.amazonaws.com/processed/owner-1/img_test1.jpg",
        processed_width=300,
        processed_height=240,
    )
    metadata = DynamoDBMetadata()

    response = handler(delete_image_event("img_test1"), lambda_context)

    body = parse_body(response)
    assert response["statusCode"] == 200
    assert body["id"] == "img_test1"
    assert body["message"] == "Image deleted successfully"
    assert body["deleted_at"]
    assert body["request_id"] == "test-request-id"
    assert metadata.fetch_image(image_id="img_test1") is None
    assert metadata.count_owner_images(owner_id="owner-1") == 0
    for key in record.storage_keys():
        assert not s3_object_exists(key)


def test_removes_output_of_job_completed_during_delete(
    seed_image, delete_image_event, lambda_context, s3_put_object, s3_object_exists, jpeg_1000x800
) -> None:
    seed_image(processing_status=ProcessingStatus.PENDING)
    # Written by a job that finished after the record was read
    processed_key = "processed/owner-1/img_test1.jpg"
    s3_put_object(processed_key, jpeg_1000x800, "image/jpeg")

    response = handler(delete_image_event("img_test1"), lambda_context)

    assert response["statusCode"] == 200
    assert not s3_object_exists(processed_key)


def test_removes_output_under_configured_type(seed_image, s3_put_object, s3_object_exists) -> None:
    seed_image(processing_status=ProcessingStatus.PENDING)
    processed_key = "processed/owner-1/img_test1.png"
    s3_put_object(processed_key, b"png-bytes", "image/png")
    settings = ServiceSettings.from_env().model_copy(update={"output_content_type": "image/png"})

    DeleteService(settings=settings).delete_image("img_test1", "owner-1")

    assert not s3_object_exists(processed_key)


def test_second_delete_is_not_found(seed_image, delete_image_event, lambda_context) -> None:
    seed_image()

    first = handler(delete_image_event("img_test1"), lambda_context)
    second = handler(delete_image_event("img_test1"), lambda_context)

    assert first["statusCode"] == 200
    assert second["statusCode"] == 404


def test_unknown_image(aws_stack, delete_image_event, lambda_context) -> None:
    response = handler(delete_image_event("img_missing"), lambda_context)

    assert response["statusCode"] == 404
    assert parse_body(response)["error"] == "IMAGE_NOT_FOUND"


def test_other_owners_image_looks_missing(
    seed_image, delete_image_event, lambda_context, s3_object_exists
) -> None:
    record = seed_image(owner_id="owner-2")

    response = handler(delete_image_event("img_test1"), lambda_context)

    assert response["statusCode"] == 404
    assert s3_object_exists(record.original_storage_key)
    assert DynamoDBMetadata().fetch_image(image_id="img_test1") is not None


def test_storage_failure_keeps_record(seed_image, delete_image_event, lambda_context) -> None:
    seed_image()

    with patch(
        "core.infrastructure.aws.s3_image_storage.S3ImageStorage.remove_image",
        side_effect=StorageError(message="S3 unavailable"),
    ):
        response = handler(delete_image_event("img_test1"), lambda_context)

    assert response["statusCode"] == 503
    assert DynamoDBMetadata().fetch_image(image_id="img_test1") is not None
