import base64
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest

from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.models.image import ImageRecord

BOUNDARY = "----image-service-test-boundary"


def build_multipart_body(
    fields: dict[str, str] | None = None,
    *,
    file_data: bytes | None = None,
    file_name: str = "photo.jpg",
    file_content_type: str = "image/jpeg",
    boundary: str = BOUNDARY,
) -> bytes:
    parts: list[bytes] = []

    for name, value in (fields or {}).items():
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode()
        )

    if file_data is not None:
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="file"; filename="{file_name}"\r\n'
                f"Content-Type: {file_content_type}\r\n\r\n"
            ).encode()
            + file_data
            + b"\r\n"
        )

    parts.append(f"--{boundary}--\r\n".encode())
    return b"".join(parts)


@pytest.fixture
def lambda_context(monkeypatch):
    context = SimpleNamespace(
        aws_request_id="test-request-id",
        function_name="test-function",
        memory_limit_in_mb=256,
        invoked_function_arn="arn:aws:lambda:us-east-1:000000000000:function:test",
        log_group_name="/aws/lambda/test-function",
        log_stream_name="2024/01/01/[$LATEST]test",
    )

    monkeypatch.setattr(
        "aws_lambda_powertools.utilities.typing.LambdaContext",
        lambda: context,
        raising=False,
    )

    return context


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def upload_event(auth_headers) -> Callable[..., dict[str, Any]]:
    """
    Build a POST /images event with a base64 multipart body.

    Usage:
        event = upload_event(file_data=jpeg, fields={"width": "300"})
    """

    def _event(
        *,
        file_data: bytes | None,
        fields: dict[str, str] | None = None,
        file_name: str = "photo.jpg",
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        body = build_multipart_body(fields, file_data=file_data, file_name=file_name)
        return {
            "httpMethod": "POST",
            "path": "/images",
            "headers": {
                **auth_headers,
                "Content-Type": f"multipart/form-data; boundary={BOUNDARY}",
                **(headers or {}),
            },
            "body": base64.b64encode(body).decode("ascii"),
            "isBase64Encoded": True,
        }

    return _event


@pytest.fixture
def status_event(auth_headers) -> Callable[[str], dict[str, Any]]:
    def _event(image_id: str) -> dict[str, Any]:
        return {
            "httpMethod": "GET",
            "path": f"/images/{image_id}/status",
            "pathParameters": {"image_id": image_id},
            "headers": dict(auth_headers),
        }

    return _event


@pytest.fixture
def list_images_event(auth_headers) -> dict[str, Any]:
    return {
        "httpMethod": "GET",
        "path": "/images",
        "queryStringParameters": {"limit": "20", "offset": "0"},
        "headers": dict(auth_headers),
    }


@pytest.fixture
def count_images_event(auth_headers) -> dict[str, Any]:
    return {
        "httpMethod": "GET",
        "path": "/images/count",
        "headers": dict(auth_headers),
    }


@pytest.fixture
def delete_image_event(auth_headers) -> Callable[[str], dict[str, Any]]:
    def _event(image_id: str) -> dict[str, Any]:
        return {
            "httpMethod": "DELETE",
            "path": f"/images/{image_id}",
            "pathParameters": {"image_id": image_id},
            "headers": dict(auth_headers),
        }

    return _event


@pytest.fixture
def seed_image(aws_stack, make_record, s3_put_object) -> Callable[..., ImageRecord]:
    """
    Store a record (and blobs for each of its keys) through the metadata layer.

    Usage:
        record = seed_image(image_id="img_a", processing_status=ProcessingStatus.PENDING)
    """
    metadata = DynamoDBMetadata()

    def _seed(**overrides: Any) -> ImageRecord:
        record = make_record(**overrides)
        for key in record.storage_keys():
            s3_put_object(key, b"stored-bytes", record.content_type)
        metadata.create_image(record=record, quota=100)
        return record

    return _seed
