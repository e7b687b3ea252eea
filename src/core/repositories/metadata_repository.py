"""Abstract contract for image metadata persistence.

The metadata store is the single source of truth for processing status.
Every status transition is a conditional write so that terminal states
stay terminal and only the claiming worker can finalize a job.
"""

from abc import ABC, abstractmethod

from core.models.image import ImageRecord


class ImageMetadataRepository(ABC):
    """Contract for storing and retrieving image records.

    Implementations could be DynamoDB, PostgreSQL, etc.
    Services depend on this interface, not the implementation.
    """

    @abstractmethod
    def create_image(self, *, record: ImageRecord, quota: int) -> None:
        """Create the record and take one quota slot, atomically.

        Raises:
            QuotaExceededError: If the owner already holds ``quota`` images
            MetadataOperationFailedError: If creation fails for other reasons
        """

    @abstractmethod
    def fetch_image(self, *, image_id: str) -> ImageRecord | None:
        """Fetch a single record with a strongly consistent read.

        Returns:
            The record, or None if not found

        Raises:
            MetadataOperationFailedError: If the read fails
        """

    @abstractmethod
    def delete_image(self, *, image_id: str, owner_id: str) -> bool:
        """Delete the record and release the owner's quota slot, atomically.

        Returns:
            True if a record was deleted, False if none existed

        Raises:
            MetadataOperationFailedError: If deletion fails
        """

    @abstractmethod
    def list_owner_images(self, *, owner_id: str) -> list[ImageRecord]:
        """List an owner's images, newest first.

        Raises:
            MetadataOperationFailedError: If the query fails
        """

    @abstractmethod
    def count_owner_images(self, *, owner_id: str) -> int:
        """Return the number of images the owner currently holds.

        Raises:
            MetadataOperationFailedError: If the read fails
        """

    @abstractmethod
    def claim_job(
        self,
        *,
        image_id: str,
        claim_token: str,
        attempt: int,
        now: int,
        lease_seconds: int,
    ) -> ImageRecord | None:
        """Exclusively claim a pending image for processing.

        Succeeds only if the record is ``pending`` and has no live claim.

        Returns:
            The claimed record, or None if the claim was refused

        Raises:
            MetadataOperationFailedError: If the write fails
        """

    @abstractmethod
    def release_job(self, *, image_id: str, claim_token: str) -> bool:
        """Drop a claim so the job can be retried. Returns False if not held."""

    @abstractmethod
    def complete_job(
        self,
        *,
        image_id: str,
        claim_token: str,
        processed_storage_key: str,
        processed_url: str,
        processed_width: int,
        processed_height: int,
    ) -> bool:
        """Mark a claimed job ``completed`` with its processed artifact.

        Returns:
            True on success, False if the record is gone or the claim was lost
        """

    @abstractmethod
    def fail_job(
        self,
        *,
        image_id: str,
        reason: str,
        claim_token: str | None = None,
    ) -> bool:
        """Mark a pending job ``failed``.

        When ``claim_token`` is given the caller must hold the claim.

        Returns:
            True on success, False if the record is gone or not pending
        """
