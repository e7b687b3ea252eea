"""Business logic for image upload operations.

This module coordinates validation, storage, metadata persistence and job
scheduling for image uploads while translating failures into
domain-specific errors.
"""

import uuid
from pathlib import PurePosixPath

from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit

from core.config import ServiceSettings, get_settings, metrics_namespace
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.infrastructure.aws.s3_image_storage import S3ImageStorage
from core.infrastructure.aws.sqs_job_queue import SQSJobQueue
from core.models.errors import (
    FileSizeError,
    JobQueueError,
    MetadataOperationFailedError,
    MIMETypeError,
    QuotaExceededError,
    StorageError,
)
from core.models.image import ImageRecord, ProcessingStatus
from core.models.job import Job
from core.models.transform import TransformRequest
from core.processing.transform_engine import TransformEngine
from core.repositories.metadata_repository import ImageMetadataRepository
from core.repositories.queue_repository import JobQueueRepository
from core.repositories.storage_repository import ImageStorageRepository, build_storage_key
from core.utils.constants import (
    ERROR_CODE_ENQUEUE_FAILED,
    MIME_TYPE_EXTENSION_MAP,
    ORIGINALS_PREFIX,
    format_file_size,
)
from core.utils.mime import detect_mime_type
from core.utils.time import utc_now_iso

logger = Logger(UTC=True)
metrics = Metrics(namespace=metrics_namespace())

MAX_FILE_NAME_LENGTH = 255


class UploadService:
    """Application service responsible for image uploads.

    This service orchestrates:
    - Size, type and decodability checks on the uploaded bytes
    - Validation of the requested transform against the decoded image
    - The per-owner image quota
    - Uploading the original to storage and persisting its record
    - Scheduling the transform job
    """

    def __init__(
        self,
        *,
        storage: ImageStorageRepository | None = None,
        metadata: ImageMetadataRepository | None = None,
        queue: JobQueueRepository | None = None,
        engine: TransformEngine | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        """Initialize the upload service with required infrastructure dependencies."""
        self.settings = settings or get_settings()
        self.storage = storage or S3ImageStorage(settings=self.settings)
        self.metadata = metadata or DynamoDBMetadata(settings=self.settings)
        self.queue = queue or SQSJobQueue(settings=self.settings)
        self.engine = engine or TransformEngine.from_settings(self.settings)

    @staticmethod
    def generate_image_id() -> str:
        """Generate a unique image identifier."""
        return f"img_{uuid.uuid4().hex}"

    @staticmethod
    def sanitize_file_name(file_name: str | None, extension: str) -> str:
        """Reduce a client-supplied file name to a safe base name."""
        name = PurePosixPath((file_name or "").replace("\\", "/")).name.strip()
        if not name or name in (".", ".."):
            name = f"upload.{extension}"
        return name[:MAX_FILE_NAME_LENGTH]

    def upload_image(
        self,
        *,
        owner_id: str,
        file_name: str | None,
        file_data: bytes,
        transform: TransformRequest,
        declared_content_type: str | None = None,
    ) -> ImageRecord:
        """Store an original image and schedule its transform.

        The upload flow is:
        1. Check size limits
        2. Detect and validate the content type from magic bytes
        3. Decode the image to learn its dimensions
        4. Validate the transform request against those dimensions
        5. Pre-check the owner's quota
        6. Upload the original to object storage
        7. Create the record and take a quota slot atomically
        8. Enqueue the transform job (if any)

        Nothing is written anywhere when steps 1-5 reject the request.

        Args:
            owner_id: Authenticated owner of the image
            file_name: Client file name (sanitized before storing)
            file_data: Raw image bytes
            transform: Requested transform; empty means no processing
            declared_content_type: Client-declared type, informational only

        Returns:
            The persisted image record

        Raises:
            FileSizeError: If the file is empty or too large
            MIMETypeError: If the content type is not allowed
            TransformError: If the image can't be decoded or the transform can't apply
            QuotaExceededError: If the owner has no quota left
            StorageError: If the original can't be stored
            MetadataOperationFailedError: If the record can't be persisted
        """
        logger.debug(
            "Starting image upload",
            extra={"owner_id": owner_id, "size": len(file_data)},
        )

        # Step 1: Size limits
        max_size = self.settings.max_upload_size_bytes
        if not file_data:
            raise FileSizeError(message="Uploaded file is empty")
        if len(file_data) > max_size:
            raise FileSizeError(
                message=f"File size exceeds {format_file_size(max_size)} limit",
                details={"size_bytes": len(file_data), "max_size_bytes": max_size},
            )

        # Step 2: Content type from magic bytes
        content_type = detect_mime_type(file_data)
        if content_type not in self.settings.allowed_content_types:
            logger.warning(
                "Unsupported content type",
                extra={"detected": content_type, "declared": declared_content_type},
            )
            raise MIMETypeError(
                message="Unsupported image type",
                details={"allowed": sorted(self.settings.allowed_content_types)},
            )
        if declared_content_type and declared_content_type != content_type:
            logger.info(
                "Declared content type differs from detected type",
                extra={"declared": declared_content_type, "detected": content_type},
            )

        # Step 3-4: Decode and validate the transform
        info = self.engine.inspect(file_data)
        if not transform.is_empty:
            self.engine.validate(transform, width=info.width, height=info.height)

        # Step 5: Quota pre-check
        quota = self.settings.user_image_quota
        if self.metadata.count_owner_images(owner_id=owner_id) >= quota:
            logger.info("Upload rejected by quota", extra={"owner_id": owner_id, "quota": quota})
            raise QuotaExceededError(
                message=f"Image quota of {quota} reached; delete an image to upload another",
                details={"quota": quota},
            )

        # Step 6: Upload original
        image_id = self.generate_image_id()
        extension = MIME_TYPE_EXTENSION_MAP[content_type]
        storage_key = build_storage_key(
            prefix=ORIGINALS_PREFIX,
            owner_id=owner_id,
            image_id=image_id,
            extension=extension,
        )

        original_url = self.storage.put_image(
            key=storage_key,
            file_data=file_data,
            content_type=content_type,
            metadata={"image-id": image_id, "owner-id": owner_id},
        )

        record = ImageRecord(
            image_id=image_id,
            owner_id=owner_id,
            file_name=self.sanitize_file_name(file_name, extension),
            content_type=content_type,
            size_bytes=len(file_data),
            original_storage_key=storage_key,
            original_url=original_url,
            width=info.width,
            height=info.height,
            processing_status=(
                ProcessingStatus.NONE if transform.is_empty else ProcessingStatus.PENDING
            ),
            transform_request=None if transform.is_empty else transform.to_json(),
            uploaded_at=utc_now_iso(),
        )

        # Step 7: Persist record and take a quota slot (roll back storage on failure)
        try:
            self.metadata.create_image(record=record, quota=quota)
        except (QuotaExceededError, MetadataOperationFailedError):
            self._remove_original(storage_key)
            raise

        metrics.add_metric(name="ImagesUploaded", unit=MetricUnit.Count, value=1)
        logger.info(
            "Image uploaded successfully",
            extra={
                "image_id": image_id,
                "owner_id": owner_id,
                "status": record.processing_status.value,
            },
        )

        # Step 8: Schedule processing
        if record.processing_status is ProcessingStatus.PENDING:
            record = self._schedule(record, transform)

        return record

    def _schedule(self, record: ImageRecord, transform: TransformRequest) -> ImageRecord:
        job = Job(
            image_id=record.image_id,
            owner_id=record.owner_id,
            original_storage_key=record.original_storage_key,
            content_type=record.content_type,
            request=transform,
        )

        try:
            self.queue.enqueue(job=job)
        except JobQueueError:
            logger.exception("Failed to enqueue transform job", extra={"image_id": record.image_id})
            return self._mark_enqueue_failed(record)

        metrics.add_metric(name="JobsEnqueued", unit=MetricUnit.Count, value=1)
        return record

    def _mark_enqueue_failed(self, record: ImageRecord) -> ImageRecord:
        try:
            marked = self.metadata.fail_job(
                image_id=record.image_id,
                reason=ERROR_CODE_ENQUEUE_FAILED,
            )
        except MetadataOperationFailedError:
            logger.exception(
                "Failed to mark image failed after enqueue error",
                extra={"image_id": record.image_id},
            )
            return record

        if not marked:
            return record

        return record.model_copy(
            update={
                "processing_status": ProcessingStatus.FAILED,
                "failure_reason": ERROR_CODE_ENQUEUE_FAILED,
            }
        )

    def _remove_original(self, storage_key: str) -> None:
        # Best-effort cleanup to avoid orphaned storage objects
        try:
            self.storage.remove_image(key=storage_key)
        except StorageError:
            logger.warning(
                "Failed to clean up uploaded image after metadata failure",
                extra={"storage_key": storage_key},
            )
