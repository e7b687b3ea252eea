"""Pagination model."""

from pydantic import BaseModel, Field, StrictBool, StrictInt


class PaginationInfo(BaseModel):
    """Offset pagination metadata for list responses."""

    limit: StrictInt = Field(..., description="Maximum number of items requested")
    offset: StrictInt = Field(..., description="Number of items skipped")
    has_more: StrictBool = Field(..., description="Whether more items follow this page")
    next_offset: StrictInt | None = Field(
        None,
        description="Offset of the next page, if any",
    )
