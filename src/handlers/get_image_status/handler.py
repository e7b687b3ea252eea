"""
Lambda handler responsible for reporting an image's processing status.
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.config import metrics_namespace
from core.utils.auth import authenticate
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import validate_request

from .models import ImageStatusRequest
from .service import StatusService

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics(namespace=metrics_namespace())


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle ``GET /images/{image_id}/status``.

    Args:
        event: API Gateway Lambda proxy event
        context: AWS Lambda execution context

    Returns:
        API Gateway-compatible HTTP response with the image status
    """
    logger.info(
        "Received image status request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": getattr(context, "aws_request_id", None),
            "function_name": getattr(context, "function_name", None),
        },
    )

    owner_id = authenticate(event)

    path_params = event.get("pathParameters") or {}
    request = validate_request(ImageStatusRequest, {"image_id": path_params.get("image_id")})

    status = StatusService().get_status(request.image_id, owner_id)

    return ResponseBuilder.ok(
        status.model_dump(mode="json", exclude_none=True),
        request_id=getattr(context, "aws_request_id", None),
    )
