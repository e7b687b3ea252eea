"""
Lambda handler responsible for listing the caller's images with pagination.
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.config import metrics_namespace
from core.utils.auth import authenticate
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import validate_request

from .models import ListImagesRequest
from .service import ListService

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics(namespace=metrics_namespace())


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle ``GET /images``.

    Supports offset-based pagination through the ``limit`` and ``offset``
    query parameters. Images are ordered newest first.

    Args:
        event: API Gateway Lambda proxy event
        context: AWS Lambda execution context

    Returns:
        API Gateway-compatible HTTP response with the page of images
    """
    logger.info(
        "Received list images request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "query_params": event.get("queryStringParameters"),
            "request_id": getattr(context, "aws_request_id", None),
            "function_name": getattr(context, "function_name", None),
        },
    )

    owner_id = authenticate(event)

    params = event.get("queryStringParameters") or {}
    request = validate_request(ListImagesRequest, params)

    response = ListService().list_images(
        owner_id=owner_id,
        offset=request.offset,
        limit=request.limit,
    )

    return ResponseBuilder.ok(
        response.model_dump(mode="json"),
        request_id=getattr(context, "aws_request_id", None),
    )
