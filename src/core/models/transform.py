"""Transform request models.

A ``TransformRequest`` is derived from the upload form fields, validated
against the decoded original, and snapshotted into the job message. It is
never persisted on its own.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from core.models.errors import InvalidCropRegionError, InvalidResizeError, ValidationError
from core.utils.constants import DEFAULT_TINT_OPACITY

CROP_FIELDS: tuple[str, ...] = ("cropX", "cropY", "cropWidth", "cropHeight")


class CropRegion(BaseModel):
    """Rectangle in original-pixel coordinates."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    def fits_within(self, width: int, height: int) -> bool:
        return self.x + self.width <= width and self.y + self.height <= height

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)


class TintSpec(BaseModel):
    """Uniform color overlay."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    color: str = Field(..., min_length=1)
    opacity: float = Field(DEFAULT_TINT_OPACITY, ge=0.0, le=1.0)


class TransformRequest(BaseModel):
    """Requested transformations, applied crop -> resize -> tint."""

    model_config = ConfigDict(frozen=True)

    resize_width: int | None = Field(None, gt=0)
    crop: CropRegion | None = None
    tint: TintSpec | None = None

    @property
    def is_empty(self) -> bool:
        return self.resize_width is None and self.crop is None and self.tint is None

    def validate_against(
        self,
        *,
        width: int,
        height: int,
        max_output_dimension: int,
    ) -> None:
        """Check the request against the decoded original's dimensions.

        Raises:
            InvalidCropRegionError: If the crop rectangle exceeds the bounds
            InvalidResizeError: If the resize width exceeds the allowed maximum
        """
        if self.crop is not None and not self.crop.fits_within(width, height):
            raise InvalidCropRegionError(
                message="Crop region must lie within the image bounds",
                details={
                    "crop": self.crop.model_dump(),
                    "image_width": width,
                    "image_height": height,
                },
            )

        if self.resize_width is not None and self.resize_width > max_output_dimension:
            raise InvalidResizeError(
                message=f"Resize width must not exceed {max_output_dimension} pixels",
                details={"width": self.resize_width},
            )

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), sort_keys=True)

    @classmethod
    def from_json(cls, raw: str | None) -> TransformRequest:
        if not raw:
            return cls()
        return cls.model_validate_json(raw)

    @classmethod
    def from_form(cls, fields: Mapping[str, str]) -> TransformRequest:
        """Build a request from upload form fields.

        Empty strings count as absent. Crop is requested when any crop field
        is present, in which case all four are required.

        Raises:
            ValidationError: If a field is not numeric or out of range
        """
        values = {k: v.strip() for k, v in fields.items() if v is not None and v.strip()}

        width = _parse_int(values, "width")
        if width is not None and width <= 0:
            raise InvalidResizeError(
                message="Width must be a positive integer",
                details={"width": width},
            )

        crop: CropRegion | None = None
        present = [name for name in CROP_FIELDS if name in values]
        if present:
            missing = [name for name in CROP_FIELDS if name not in values]
            if missing:
                raise InvalidCropRegionError(
                    message="Crop requires cropX, cropY, cropWidth and cropHeight",
                    details={"missing": missing},
                )
            try:
                crop = CropRegion(
                    x=_parse_int(values, "cropX"),
                    y=_parse_int(values, "cropY"),
                    width=_parse_int(values, "cropWidth"),
                    height=_parse_int(values, "cropHeight"),
                )
            except PydanticValidationError as exc:
                raise InvalidCropRegionError(
                    message="Crop offsets must be non-negative and sizes positive",
                    details={"crop": {name: values[name] for name in CROP_FIELDS}},
                ) from exc

        tint: TintSpec | None = None
        if "tintColor" in values:
            opacity = _parse_float(values, "tintOpacity")
            try:
                tint = TintSpec(
                    color=values["tintColor"],
                    opacity=DEFAULT_TINT_OPACITY if opacity is None else opacity,
                )
            except PydanticValidationError as exc:
                raise ValidationError(
                    message="Tint opacity must be between 0 and 1",
                    details={"tintOpacity": values.get("tintOpacity")},
                ) from exc
        elif "tintOpacity" in values:
            raise ValidationError(
                message="tintOpacity requires tintColor",
                details={"missing": ["tintColor"]},
            )

        return cls(resize_width=width, crop=crop, tint=tint)


def _parse_int(values: Mapping[str, str], name: str) -> int | None:
    raw = values.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(
            message=f"Invalid value for '{name}': must be an integer",
            details={"field": name},
        ) from exc


def _parse_float(values: Mapping[str, str], name: str) -> float | None:
    raw = values.get(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(
            message=f"Invalid value for '{name}': must be a number",
            details={"field": name},
        ) from exc
