"""Pure image transform engine: crop, then resize, then tint.

The engine performs no I/O and keeps no state between calls, so a single
instance can be shared by every worker thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from aws_lambda_powertools import Logger
from PIL import Image, ImageColor, UnidentifiedImageError

from core.config import ServiceSettings
from core.models.errors import (
    ImageDecodeError,
    ImageEncodeError,
    InvalidColorError,
    InvalidResizeError,
)
from core.models.transform import TransformRequest
from core.utils.constants import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_IMAGE_PIXELS,
    DEFAULT_MAX_OUTPUT_DIMENSION,
    MIME_TYPE_PIL_FORMAT_MAP,
)

logger = Logger(UTC=True)

PIL_FORMAT_MIME_TYPE_MAP: dict[str, str] = {v: k for k, v in MIME_TYPE_PIL_FORMAT_MAP.items()}

_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
)


@dataclass(frozen=True)
class ImageInfo:
    """Decoded properties of an image."""

    width: int
    height: int
    content_type: str


@dataclass(frozen=True)
class TransformResult:
    """Encoded output of a transform."""

    data: bytes
    width: int
    height: int
    content_type: str


def parse_color(value: str) -> tuple[int, int, int]:
    """Parse ``#rgb``, ``#rrggbb``, CSS color names and ``rgb(...)`` into RGB.

    Raises:
        InvalidColorError: If the value is not a recognised color
    """
    try:
        rgb = ImageColor.getrgb(value.strip())
    except (ValueError, AttributeError) as exc:
        raise InvalidColorError(
            message=f"Unrecognised tint color '{value}'",
            details={"tintColor": value},
        ) from exc
    return rgb[0], rgb[1], rgb[2]


class TransformEngine:
    """Applies a ``TransformRequest`` to encoded image bytes."""

    def __init__(
        self,
        *,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_output_dimension: int = DEFAULT_MAX_OUTPUT_DIMENSION,
        max_image_pixels: int = DEFAULT_MAX_IMAGE_PIXELS,
        output_content_type: str | None = None,
    ) -> None:
        self.jpeg_quality = jpeg_quality
        self.max_output_dimension = max_output_dimension
        self.max_image_pixels = max_image_pixels
        self.output_content_type = output_content_type

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> TransformEngine:
        return cls(
            jpeg_quality=settings.jpeg_quality,
            max_output_dimension=settings.max_output_dimension,
            max_image_pixels=settings.max_image_pixels,
            output_content_type=settings.output_content_type,
        )

    def inspect(self, data: bytes) -> ImageInfo:
        """Decode an image fully and report its dimensions and type.

        Raises:
            ImageDecodeError: If the bytes are not a decodable, supported image
        """
        image = self._open(data)
        return ImageInfo(
            width=image.width,
            height=image.height,
            content_type=PIL_FORMAT_MIME_TYPE_MAP[image.format],
        )

    def validate(self, request: TransformRequest, *, width: int, height: int) -> None:
        """Reject a request that can never succeed against an image of this size.

        Raises:
            InvalidCropRegionError: If the crop rectangle exceeds the bounds
            InvalidResizeError: If the output would exceed the maximum dimension
            InvalidColorError: If the tint color can't be parsed
        """
        request.validate_against(
            width=width,
            height=height,
            max_output_dimension=self.max_output_dimension,
        )

        if request.resize_width is not None:
            source_width = request.crop.width if request.crop else width
            source_height = request.crop.height if request.crop else height
            self._resized_height(source_width, source_height, request.resize_width)

        if request.tint is not None:
            parse_color(request.tint.color)

    def apply(self, data: bytes, request: TransformRequest) -> TransformResult:
        """Run crop, resize and tint (each only if requested) and re-encode.

        Raises:
            TransformError: Any deterministic failure; retrying will not help
        """
        image = self._open(data)
        source_format = image.format
        self.validate(request, width=image.width, height=image.height)

        image = self._normalize_mode(image)

        if request.crop is not None:
            image = image.crop(request.crop.box)

        if request.resize_width is not None:
            new_height = self._resized_height(image.width, image.height, request.resize_width)
            image = image.resize(
                (request.resize_width, new_height),
                resample=Image.Resampling.LANCZOS,
            )

        if request.tint is not None:
            image = self._tint(image, parse_color(request.tint.color), request.tint.opacity)

        content_type = self.output_content_type or PIL_FORMAT_MIME_TYPE_MAP[source_format]
        encoded = self._encode(image, content_type)

        logger.debug(
            "Transform applied",
            extra={
                "width": image.width,
                "height": image.height,
                "content_type": content_type,
                "size": len(encoded),
            },
        )

        return TransformResult(
            data=encoded,
            width=image.width,
            height=image.height,
            content_type=content_type,
        )

    def _open(self, data: bytes) -> Image.Image:
        try:
            image = Image.open(BytesIO(data))
        except _DECODE_ERRORS as exc:
            raise ImageDecodeError(message="File is not a decodable image") from exc

        if image.format not in PIL_FORMAT_MIME_TYPE_MAP:
            raise ImageDecodeError(
                message="Unsupported image format",
                details={"format": image.format},
            )

        if image.width * image.height > self.max_image_pixels:
            raise ImageDecodeError(
                message="Image dimensions are too large to process",
                details={"width": image.width, "height": image.height},
            )

        try:
            # Animated GIFs are processed as their first frame
            image.seek(0)
            image.load()
        except _DECODE_ERRORS as exc:
            raise ImageDecodeError(message="Image data is corrupt or truncated") from exc

        return image

    def _resized_height(self, width: int, height: int, target_width: int) -> int:
        new_height = max(1, round(height * target_width / width))
        if new_height > self.max_output_dimension:
            raise InvalidResizeError(
                message=f"Resized height would exceed {self.max_output_dimension} pixels",
                details={"width": target_width, "height": new_height},
            )
        return new_height

    @staticmethod
    def _normalize_mode(image: Image.Image) -> Image.Image:
        """Convert to RGB or RGBA so every step can resample and blend."""
        has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
        target = "RGBA" if has_alpha else "RGB"
        if image.mode == target:
            return image
        return image.convert(target)

    @staticmethod
    def _tint(image: Image.Image, color: tuple[int, int, int], opacity: float) -> Image.Image:
        overlay = Image.new("RGB", image.size, color)

        if image.mode == "RGBA":
            alpha = image.getchannel("A")
            tinted = Image.blend(image.convert("RGB"), overlay, opacity)
            tinted.putalpha(alpha)
            return tinted

        return Image.blend(image, overlay, opacity)

    def _encode(self, image: Image.Image, content_type: str) -> bytes:
        pil_format = MIME_TYPE_PIL_FORMAT_MAP[content_type]
        output = BytesIO()

        try:
            if pil_format == "JPEG":
                image.convert("RGB").save(output, format="JPEG", quality=self.jpeg_quality)
            else:
                image.save(output, format=pil_format)
        except (OSError, ValueError) as exc:
            raise ImageEncodeError(
                message="Unable to encode processed image",
                details={"content_type": content_type},
            ) from exc

        return output.getvalue()
