"""
Pytest configuration and fixtures for image processing service tests.
Provides AWS mocking, DynamoDB, S3 and SQS fixtures with proper cleanup,
plus synthetic images and bearer tokens.
"""

import os

os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "image-processing-service")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "ImageProcessingTests")
os.environ.setdefault("IMAGE_S3_BUCKET_NAME", "test-image-bucket")
os.environ.setdefault("IMAGE_METADATA_TABLE_NAME", "test-image-metadata")
os.environ.setdefault("IMAGE_QUOTA_TABLE_NAME", "test-image-quota")
os.environ.setdefault("IMAGE_JOB_QUEUE_URL", "https://sqs.us-east-1.amazonaws.com/123456789012/test-image-jobs")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import time  # noqa: E402
from collections.abc import Callable  # noqa: E402
from io import BytesIO  # noqa: E402
from typing import Any  # noqa: E402

import boto3  # noqa: E402
import pytest  # noqa: E402
from jose import jwt  # noqa: E402
from moto import mock_aws  # noqa: E402
from PIL import Image  # noqa: E402

from core.config import get_settings  # noqa: E402
from core.models.image import ImageRecord, ProcessingStatus  # noqa: E402
from core.utils.constants import OWNER_UPLOADED_INDEX  # noqa: E402

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; each test sees its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="function")
def aws_mock():
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def dynamodb_resource(aws_mock):
    return boto3.resource("dynamodb", region_name=os.getenv("AWS_REGION"))


@pytest.fixture(scope="function")
def dynamodb_table(dynamodb_resource):
    """Metadata table keyed by image_id, with the owner/uploaded_at GSI."""
    table = dynamodb_resource.create_table(
        TableName=os.getenv("IMAGE_METADATA_TABLE_NAME"),
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[{"AttributeName": "image_id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "image_id", "AttributeType": "S"},
            {"AttributeName": "owner_id", "AttributeType": "S"},
            {"AttributeName": "uploaded_at", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": OWNER_UPLOADED_INDEX,
                "KeySchema": [
                    {"AttributeName": "owner_id", "KeyType": "HASH"},
                    {"AttributeName": "uploaded_at", "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
    )
    table.wait_until_exists()
    return table


@pytest.fixture(scope="function")
def quota_table(dynamodb_resource):
    """Quota table keyed by owner_id holding image_count."""
    table = dynamodb_resource.create_table(
        TableName=os.getenv("IMAGE_QUOTA_TABLE_NAME"),
        BillingMode="PAY_PER_REQUEST",
        KeySchema=[{"AttributeName": "owner_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "owner_id", "AttributeType": "S"}],
    )
    table.wait_until_exists()
    return table


@pytest.fixture(scope="function")
def s3_client(aws_mock):
    """S3 client for bucket operations."""
    return boto3.client("s3", region_name=os.getenv("AWS_REGION"))


@pytest.fixture(scope="function")
def s3_bucket(s3_client):
    """Create the image bucket; moto discards it on context exit."""
    s3_client.create_bucket(Bucket=os.getenv("IMAGE_S3_BUCKET_NAME"))
    return s3_client


@pytest.fixture(scope="function")
def sqs_queue(aws_mock, monkeypatch) -> str:
    """Create the job queue and point the settings at its URL."""
    sqs = boto3.client("sqs", region_name=os.getenv("AWS_REGION"))
    queue_url = sqs.create_queue(QueueName="test-image-jobs")["QueueUrl"]
    monkeypatch.setenv("IMAGE_JOB_QUEUE_URL", queue_url)
    get_settings.cache_clear()
    return queue_url


@pytest.fixture
def aws_stack(dynamodb_table, quota_table, s3_bucket, sqs_queue) -> dict[str, Any]:
    """Every backing resource the service needs."""
    return {
        "table": dynamodb_table,
        "quota_table": quota_table,
        "s3": s3_bucket,
        "queue_url": sqs_queue,
    }


@pytest.fixture
def s3_put_object(s3_client) -> Callable[[str, bytes, str], dict[str, Any]]:
    """
    Helper to upload an object to S3.

    Usage:
        response = s3_put_object("originals/owner/img.jpg", image_bytes, "image/jpeg")
    """

    def _put(key: str, body: bytes, content_type: str = "application/octet-stream"):
        return s3_client.put_object(
            Bucket=os.getenv("IMAGE_S3_BUCKET_NAME"),
            Key=key,
            Body=body,
            ContentType=content_type,
        )

    return _put


@pytest.fixture
def s3_object_exists(s3_client) -> Callable[[str], bool]:
    def _exists(key: str) -> bool:
        response = s3_client.list_objects_v2(
            Bucket=os.getenv("IMAGE_S3_BUCKET_NAME"),
            Prefix=key,
        )
        return any(obj["Key"] == key for obj in response.get("Contents", []))

    return _exists


@pytest.fixture
def s3_get_object(s3_client) -> Callable[[str], bytes]:
    def _get(key: str) -> bytes:
        response = s3_client.get_object(Bucket=os.getenv("IMAGE_S3_BUCKET_NAME"), Key=key)
        return response["Body"].read()

    return _get


@pytest.fixture
def queue_messages(sqs_queue) -> Callable[[], list[dict[str, Any]]]:
    """Drain and return every visible message on the job queue."""

    def _drain() -> list[dict[str, Any]]:
        sqs = boto3.client("sqs", region_name=os.getenv("AWS_REGION"))
        messages: list[dict[str, Any]] = []
        while True:
            batch = sqs.receive_message(
                QueueUrl=sqs_queue,
                MaxNumberOfMessages=10,
                AttributeNames=["All"],
                MessageAttributeNames=["All"],
            ).get("Messages", [])
            if not batch:
                return messages
            messages.extend(batch)
            for message in batch:
                sqs.delete_message(QueueUrl=sqs_queue, ReceiptHandle=message["ReceiptHandle"])

    return _drain


def _make_image(
    fmt: str = "JPEG",
    size: tuple[int, int] = (1000, 800),
    color: tuple[int, ...] = (200, 100, 50),
    mode: str = "RGB",
) -> bytes:
    image = Image.new(mode, size, color)
    output = BytesIO()
    image.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """
    Factory for synthetic encoded images.

    Usage:
        data = make_image("PNG", (200, 100), (0, 0, 0, 128), mode="RGBA")
    """
    return _make_image


@pytest.fixture
def jpeg_1000x800() -> bytes:
    return _make_image("JPEG", (1000, 800))


@pytest.fixture
def png_1000x800() -> bytes:
    return _make_image("PNG", (1000, 800))


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for HS256 bearer tokens signed with the test secret."""

    def _token(
        sub: str | None = OWNER_ID,
        *,
        secret: str | None = None,
        expires_in: int = 3600,
    ) -> str:
        claims: dict[str, Any] = {"exp": int(time.time()) + expires_in}
        if sub is not None:
            claims["sub"] = sub
        return jwt.encode(claims, secret or os.environ["JWT_SECRET"], algorithm="HS256")

    return _token


@pytest.fixture
def make_record() -> Callable[..., ImageRecord]:
    """Factory for image records with sensible defaults."""

    def _record(**overrides: Any) -> ImageRecord:
        image_id = overrides.pop("image_id", "img_test1")
        owner_id = overrides.pop("owner_id", OWNER_ID)
        values: dict[str, Any] = {
            "image_id": image_id,
            "owner_id": owner_id,
            "file_name": "photo.jpg",
            "content_type": "image/jpeg",
            "size_bytes": 1234,
            "original_storage_key": f"originals/{owner_id}/{image_id}.jpg",
            "original_url": f"https://test-image-bucket.s3.amazonaws.com/originals/{owner_id}/{image_id}.jpg",
            "width": 1000,
            "height": 800,
            "processing_status": ProcessingStatus.NONE,
            "uploaded_at": "2024-01-01T10:00:00+00:00",
        }
        values.update(overrides)
        return ImageRecord(**values)

    return _record
