"""Abstract contract for image blob storage."""

from abc import ABC, abstractmethod


class ImageStorageRepository(ABC):
    """Contract for storing and retrieving image bytes.

    Implementations could be S3, GCS, local disk, etc.
    Services depend on this interface, not the implementation.
    """

    @abstractmethod
    def put_image(
        self,
        *,
        key: str,
        file_data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Store bytes under ``key`` and return the object URL.

        Raises:
            StorageError: If the write fails
        """

    @abstractmethod
    def download_image(self, *, key: str) -> bytes:
        """Return the bytes stored under ``key``.

        Raises:
            NotFoundError: If the object doesn't exist
            StorageError: If the download fails
        """

    @abstractmethod
    def remove_image(self, *, key: str) -> None:
        """Delete the object. Deleting a missing key is not an error.

        Raises:
            StorageError: If deletion fails
        """

    @abstractmethod
    def object_url(self, *, key: str) -> str:
        """Return the URL clients use to fetch the object."""


def build_storage_key(*, prefix: str, owner_id: str, image_id: str, extension: str) -> str:
    """Return the blob key for an image: ``<prefix>/<owner_id>/<image_id>.<ext>``."""
    return f"{prefix}/{owner_id}/{image_id}.{extension}"
