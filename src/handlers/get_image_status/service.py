"""
Business logic for image status queries.

A status query is one strongly consistent metadata read; it never touches
object storage.
"""

from aws_lambda_powertools import Logger

from core.config import ServiceSettings
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.models.errors import ForbiddenError, ImageServiceError, NotFoundError
from core.models.image import ProcessingStatus
from core.repositories.metadata_repository import ImageMetadataRepository
from core.utils.constants import ERROR_CODE_IMAGE_NOT_FOUND, ERROR_CODE_METADATA_INVALID_STATE

from .models import ImageStatusResponse

logger = Logger(UTC=True)


class StatusService:
    """Application service answering "is my image processed yet?"."""

    def __init__(
        self,
        *,
        metadata: ImageMetadataRepository | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        self.metadata = metadata or DynamoDBMetadata(settings=settings)

    def get_status(self, image_id: str, owner_id: str) -> ImageStatusResponse:
        """Return the processing status of an owner's image.

        Raises:
            NotFoundError: If the image does not exist
            ForbiddenError: If the image belongs to another owner
            ImageServiceError: If a completed record has no processed URL
        """
        record = self.metadata.fetch_image(image_id=image_id)

        if record is None:
            logger.info("Image not found", extra={"image_id": image_id})
            raise NotFoundError(
                message="Image not found",
                error_code=ERROR_CODE_IMAGE_NOT_FOUND,
                details={"image_id": image_id},
            )

        if record.owner_id != owner_id:
            logger.warning(
                "Status requested for another owner's image",
                extra={"image_id": image_id, "owner_id": owner_id},
            )
            raise ForbiddenError(message="You do not have access to this image")

        response = ImageStatusResponse(id=record.image_id, status=record.processing_status)

        if record.processing_status is ProcessingStatus.COMPLETED:
            if not record.processed_url:
                logger.error(
                    "Completed image has no processed URL",
                    extra={"image_id": image_id},
                )
                raise ImageServiceError(
                    message="Image record is in an inconsistent state",
                    error_code=ERROR_CODE_METADATA_INVALID_STATE,
                    details={"image_id": image_id},
                )
            response = response.model_copy(
                update={
                    "processed_url": record.processed_url,
                    "processed_width": record.processed_width,
                    "processed_height": record.processed_height,
                }
            )
        elif record.processing_status is ProcessingStatus.FAILED:
            response = response.model_copy(update={"failure_reason": record.failure_reason})

        return response
