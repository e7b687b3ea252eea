"""Pydantic models for image upload response."""

from pydantic import BaseModel, Field

from core.models.image import ImageRecord, ProcessingStatus
from core.utils.constants import API_SCHEMA_VERSION

STATUS_MESSAGES: dict[ProcessingStatus, str] = {
    ProcessingStatus.NONE: "Image uploaded successfully",
    ProcessingStatus.PENDING: "Image uploaded; processing has been scheduled",
    ProcessingStatus.FAILED: "Image uploaded, but processing could not be scheduled",
}


class ImageUploadResponse(BaseModel):
    """Response model for successful image upload."""

    id: str = Field(..., description="Unique image ID")
    stored_key: str = Field(..., description="Storage key of the original")
    original_url: str = Field(..., description="URL of the original image")
    width: int = Field(..., description="Original width in pixels")
    height: int = Field(..., description="Original height in pixels")
    status: ProcessingStatus = Field(..., description="Processing status")
    message: str = Field(..., description="Human-readable summary")
    schema_version: str = Field(API_SCHEMA_VERSION, description="Wire schema version")

    @classmethod
    def from_record(cls, record: ImageRecord) -> "ImageUploadResponse":
        return cls(
            id=record.image_id,
            stored_key=record.original_storage_key,
            original_url=record.original_url,
            width=record.width,
            height=record.height,
            status=record.processing_status,
            message=STATUS_MESSAGES.get(record.processing_status, "Image uploaded"),
        )
