"""
Lambda handler responsible for reporting how many images the caller stores.
"""

from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

from core.config import metrics_namespace
from core.utils.auth import authenticate
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder

from .service import CountService

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics(namespace=metrics_namespace())


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Handle ``GET /images/count``."""
    logger.info(
        "Received image count request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": getattr(context, "aws_request_id", None),
        },
    )

    owner_id = authenticate(event)
    response = CountService().count_images(owner_id)

    return ResponseBuilder.ok(
        response.model_dump(),
        request_id=getattr(context, "aws_request_id", None),
    )
