"""Pydantic models for the image status request/response."""

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from core.models.image import ProcessingStatus
from core.utils.constants import API_SCHEMA_VERSION


class ImageStatusRequest(BaseModel):
    """Validation model for image status request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    image_id: StrictStr = Field(
        ...,
        min_length=1,
        description="Image ID to query",
    )

    @field_validator("image_id")
    @classmethod
    def validate_image_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("image_id must not be blank")
        return value


class ImageStatusResponse(BaseModel):
    """Processing status of one image.

    ``processed_*`` fields appear only once processing completed;
    ``failure_reason`` only once it failed.
    """

    id: str = Field(..., description="Image ID")
    status: ProcessingStatus = Field(..., description="Processing status")
    processed_url: str | None = Field(None, description="Processed artifact URL")
    processed_width: int | None = None
    processed_height: int | None = None
    failure_reason: str | None = Field(None, description="Stable failure reason code")
    schema_version: str = Field(API_SCHEMA_VERSION, description="Wire schema version")
