"""
Lambda handler responsible for image upload and job scheduling.
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.config import get_settings, metrics_namespace
from core.models.errors import ValidationError
from core.models.transform import TransformRequest
from core.utils.auth import authenticate
from core.utils.constants import UPLOAD_FILE_FIELD
from core.utils.decorators import api_gateway_handler
from core.utils.multipart import parse_upload_form
from core.utils.response import ResponseBuilder

from .models import ImageUploadResponse
from .service import UploadService

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics(namespace=metrics_namespace())


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle image upload requests.

    Expected API Gateway event structure:
    {
        "headers": {
            "Authorization": "Bearer <jwt>",
            "Content-Type": "multipart/form-data; boundary=..."
        },
        "body": "<base64 multipart body>",
        "isBase64Encoded": true
    }

    Form fields: ``file`` (required) plus the optional transform fields
    ``width``, ``cropX``, ``cropY``, ``cropWidth``, ``cropHeight``,
    ``tintColor`` and ``tintOpacity``.

    Args:
        event: API Gateway Lambda proxy event containing the upload payload
        context: AWS Lambda execution context

    Returns:
        API Gateway-compatible HTTP response describing the stored image
    """
    logger.info(
        "Received image upload request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": getattr(context, "aws_request_id", None),
            "function_name": getattr(context, "function_name", None),
            "remaining_time_ms": context.get_remaining_time_in_millis()
            if hasattr(context, "get_remaining_time_in_millis")
            else None,
        },
    )

    owner_id = authenticate(event)
    settings = get_settings()

    form = parse_upload_form(event, max_file_size=settings.max_upload_size_bytes)
    if form.file_data is None:
        raise ValidationError(
            message=f"Missing '{UPLOAD_FILE_FIELD}' form field",
            details={"field": UPLOAD_FILE_FIELD},
        )

    transform = TransformRequest.from_form(form.fields)

    record = UploadService(settings=settings).upload_image(
        owner_id=owner_id,
        file_name=form.file_name,
        file_data=form.file_data,
        transform=transform,
    )

    response = ImageUploadResponse.from_record(record)
    return ResponseBuilder.created(
        response.model_dump(mode="json"),
        request_id=getattr(context, "aws_request_id", None),
    )
