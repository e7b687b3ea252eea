"""Pydantic models for the image count response."""

from pydantic import BaseModel, Field


class ImageCountResponse(BaseModel):
    """Number of images the caller currently stores, and the quota."""

    count: int = Field(..., ge=0, description="Images currently stored")
    quota: int = Field(..., ge=1, description="Maximum images per owner")
