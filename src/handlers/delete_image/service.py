"""Business logic for image deletion.

This module coordinates deletion of an image's stored objects and its
record. Objects are removed first; the record and its quota slot go last,
in one transaction, so a failure part-way leaves a record that can be
deleted again.
"""

from aws_lambda_powertools import Logger

from core.config import ServiceSettings, get_settings
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.infrastructure.aws.s3_image_storage import S3ImageStorage
from core.models.errors import NotFoundError, StorageError
from core.models.image import ImageRecord
from core.repositories.metadata_repository import ImageMetadataRepository
from core.repositories.storage_repository import ImageStorageRepository, build_storage_key
from core.utils.constants import (
    ERROR_CODE_IMAGE_NOT_FOUND,
    MIME_TYPE_EXTENSION_MAP,
    PROCESSED_PREFIX,
)
from core.utils.time import utc_now_iso

from .models import DeleteImageResponse

logger = Logger(UTC=True)


class DeleteService:
    """Application service responsible for deleting images.

    This service orchestrates:
    - Validation that the image exists and belongs to the caller
    - Deletion of the original and processed objects from storage
    - Removal of the record together with the owner's quota slot

    It does not perform low-level infrastructure operations directly.
    """

    def __init__(
        self,
        *,
        storage: ImageStorageRepository | None = None,
        metadata: ImageMetadataRepository | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        """Initialize the delete service with required infrastructure dependencies."""
        self.settings = settings or get_settings()
        self.storage = storage or S3ImageStorage(settings=self.settings)
        self.metadata = metadata or DynamoDBMetadata(settings=self.settings)

    def delete_image(self, image_id: str, owner_id: str) -> DeleteImageResponse:
        """Delete an image owned by ``owner_id``.

        The deletion flow is:
        1. Fetch the record to confirm it exists and belongs to the caller
        2. Delete the original and any processed object from storage
        3. Delete the record and release the quota slot atomically
        4. Remove the processed object a job may have written after step 1

        An image owned by someone else is reported exactly like a missing one.

        Raises:
            NotFoundError: If the image does not exist or is not the caller's
            StorageError: If storage deletion fails
            MetadataOperationFailedError: If record deletion fails
        """
        logger.debug("Starting image deletion", extra={"image_id": image_id})

        # Step 1: Fetch the record and check ownership
        record = self.metadata.fetch_image(image_id=image_id)

        if record is None or record.owner_id != owner_id:
            logger.info(
                "Image not found for owner",
                extra={"image_id": image_id, "owner_id": owner_id},
            )
            raise self._not_found(image_id)

        # Step 2: Delete stored objects
        removed = record.storage_keys()
        for key in removed:
            self.storage.remove_image(key=key)

        # Step 3: Delete the record and release the quota slot
        if not self.metadata.delete_image(image_id=image_id, owner_id=owner_id):
            # Deleted concurrently
            raise self._not_found(image_id)

        # Step 4: A job that completed after the fetch wrote under a derivable key
        for key in self._processed_keys(record):
            if key not in removed:
                self._remove_quietly(key)

        logger.info("Image deleted successfully", extra={"image_id": image_id})

        return DeleteImageResponse(
            id=image_id,
            message="Image deleted successfully",
            deleted_at=utc_now_iso(),
        )

    @staticmethod
    def _not_found(image_id: str) -> NotFoundError:
        return NotFoundError(
            message="Image not found",
            error_code=ERROR_CODE_IMAGE_NOT_FOUND,
            details={"image_id": image_id},
        )

    def _processed_keys(self, record: ImageRecord) -> set[str]:
        # Output is the configured type, or the original's when none is set
        content_types = {record.content_type, self.settings.output_content_type}
        return {
            build_storage_key(
                prefix=PROCESSED_PREFIX,
                owner_id=record.owner_id,
                image_id=record.image_id,
                extension=MIME_TYPE_EXTENSION_MAP[content_type],
            )
            for content_type in content_types
            if content_type
        }

    def _remove_quietly(self, key: str) -> None:
        try:
            self.storage.remove_image(key=key)
        except StorageError:
            # Record already gone; the object is orphaned but unreachable
            logger.warning("Failed to remove processed object", extra={"key": key})
