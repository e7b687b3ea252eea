"""Shared image record model and processing status."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from core.models.pagination import PaginationInfo


class ProcessingStatus(str, Enum):
    """Processing state of an image.

    ``none`` is set at creation when no transform was requested and never
    changes. ``pending`` moves exactly once to ``completed`` or ``failed``.
    """

    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ProcessingStatus.PENDING


class ImageRecord(BaseModel):
    """Durable image record as stored in the metadata table."""

    model_config = ConfigDict(extra="ignore")

    image_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    file_name: str
    content_type: str
    size_bytes: int = Field(..., ge=0)

    original_storage_key: str
    original_url: str
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    processing_status: ProcessingStatus
    transform_request: str | None = None
    attempt_count: int = 0
    failure_reason: str | None = None

    processed_storage_key: str | None = None
    processed_url: str | None = None
    processed_width: int | None = None
    processed_height: int | None = None

    uploaded_at: str
    updated_at: str | None = None

    claim_token: str | None = None
    claim_expires_at: int | None = None

    def to_item(self) -> dict[str, Any]:
        """Serialize for DynamoDB, dropping unset optional attributes."""
        return self.model_dump(mode="json", exclude_none=True)

    def storage_keys(self) -> list[str]:
        """All blob keys owned by this record."""
        keys = [self.original_storage_key]
        if self.processed_storage_key:
            keys.append(self.processed_storage_key)
        return keys


class ImageMeta(BaseModel):
    """Image metadata returned to API clients."""

    id: StrictStr = Field(..., description="Unique image identifier")
    file_name: StrictStr = Field(..., description="Original file name")
    content_type: StrictStr = Field(..., description="Detected MIME type")
    size_bytes: StrictInt = Field(..., description="Original size in bytes")

    stored_key: StrictStr = Field(..., description="Storage key of the original")
    original_url: StrictStr = Field(..., description="URL of the original image")
    width: StrictInt = Field(..., description="Original width in pixels")
    height: StrictInt = Field(..., description="Original height in pixels")

    status: ProcessingStatus = Field(..., description="Processing status")
    processed_url: StrictStr | None = Field(None, description="Processed artifact URL")
    processed_width: StrictInt | None = None
    processed_height: StrictInt | None = None

    uploaded_at: StrictStr = Field(..., description="ISO-8601 upload timestamp (UTC)")

    @classmethod
    def from_record(cls, record: ImageRecord) -> ImageMeta:
        completed = record.processing_status is ProcessingStatus.COMPLETED
        return cls(
            id=record.image_id,
            file_name=record.file_name,
            content_type=record.content_type,
            size_bytes=record.size_bytes,
            stored_key=record.original_storage_key,
            original_url=record.original_url,
            width=record.width,
            height=record.height,
            status=record.processing_status,
            processed_url=record.processed_url if completed else None,
            processed_width=record.processed_width if completed else None,
            processed_height=record.processed_height if completed else None,
            uploaded_at=record.uploaded_at,
        )


class ListImagesResponse(BaseModel):
    """Paginated response for listing images."""

    images: list[ImageMeta] = Field(..., description="List of image metadata objects")
    total_count: StrictInt = Field(..., description="Total number of images owned")
    returned_count: StrictInt = Field(..., description="Number of images in this response")
    pagination: PaginationInfo = Field(..., description="Pagination metadata")
