"""S3-backed implementation of ImageStorageRepository."""

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from core.config import ServiceSettings, get_settings
from core.infrastructure.adapters.s3_adapter import S3Adapter, S3AdapterProtocol
from core.models.errors import NotFoundError, StorageError
from core.repositories.storage_repository import ImageStorageRepository
from core.utils.constants import (
    DEFAULT_AWS_REGION,
    ERROR_CODE_IMAGE_DELETE_FAILED,
    ERROR_CODE_IMAGE_DOWNLOAD_FAILED,
    ERROR_CODE_IMAGE_NOT_FOUND,
    ERROR_CODE_IMAGE_UPLOAD_FAILED,
)

logger = Logger(UTC=True)


class S3ImageStorage(ImageStorageRepository):
    """Image storage implementation backed by Amazon S3."""

    def __init__(
        self,
        adapter: S3AdapterProtocol | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        """Create storage using the provided S3 adapter."""
        settings = settings or get_settings()
        self._s3: S3AdapterProtocol = adapter or S3Adapter(settings)
        self._public_base_url = settings.public_base_url

    def put_image(
        self,
        *,
        key: str,
        file_data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload image bytes to S3 and return the object URL."""
        logger.debug(
            "Uploading image",
            extra={"key": key, "size": len(file_data), "content_type": content_type},
        )

        try:
            self._s3.put_object(
                key=key,
                body=file_data,
                content_type=content_type,
                metadata=metadata or {},
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed", extra={"key": key, "error": str(exc)})
            raise StorageError(
                message="Unable to store image at this time",
                error_code=ERROR_CODE_IMAGE_UPLOAD_FAILED,
                details={"key": key},
            ) from exc

        logger.info("Image stored", extra={"key": key})
        return self.object_url(key=key)

    def download_image(self, *, key: str) -> bytes:
        """Download image bytes from S3."""
        logger.debug("Downloading image", extra={"key": key})

        try:
            response = self._s3.get_object(key=key)
            return response["Body"].read()

        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFoundError(
                    message="Image not found",
                    error_code=ERROR_CODE_IMAGE_NOT_FOUND,
                    details={"key": key},
                ) from exc

            logger.error("S3 download failed", extra={"key": key, "error": str(exc)})
            raise StorageError(
                message="Unable to download image at this time",
                error_code=ERROR_CODE_IMAGE_DOWNLOAD_FAILED,
                details={"key": key},
            ) from exc

        except BotoCoreError as exc:
            logger.error("S3 download failed", extra={"key": key, "error": str(exc)})
            raise StorageError(
                message="Unable to download image at this time",
                error_code=ERROR_CODE_IMAGE_DOWNLOAD_FAILED,
                details={"key": key},
            ) from exc

    def remove_image(self, *, key: str) -> None:
        """Delete an image object from S3."""
        logger.debug("Deleting image", extra={"key": key})

        try:
            self._s3.delete_object(key=key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 deletion failed", extra={"key": key, "error": str(exc)})
            raise StorageError(
                message="Unable to delete image at this time",
                error_code=ERROR_CODE_IMAGE_DELETE_FAILED,
                details={"key": key},
            ) from exc

        logger.info("Image deleted", extra={"key": key})

    def object_url(self, *, key: str) -> str:
        """Return the public URL of an object.

        ``IMAGE_PUBLIC_BASE_URL`` (e.g. a CDN) takes precedence over the
        virtual-hosted S3 URL.
        """
        if self._public_base_url:
            return f"{self._public_base_url.rstrip('/')}/{key}"

        bucket = self._s3.bucket
        region = self._s3.region
        if not region or region == DEFAULT_AWS_REGION:
            return f"https://{bucket}.s3.amazonaws.com/{key}"
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"
