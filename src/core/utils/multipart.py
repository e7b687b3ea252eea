"""Parsing of multipart/form-data bodies from API Gateway proxy events."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any

from aws_lambda_powertools import Logger
from python_multipart import create_form_parser
from python_multipart.exceptions import FormParserError

from core.models.errors import FileSizeError, ValidationError
from core.utils.constants import (
    ERROR_CODE_INVALID_MULTIPART,
    UPLOAD_FILE_FIELD,
    format_file_size,
)

logger = Logger(UTC=True)

# Room for boundaries, part headers and the small text fields
MULTIPART_OVERHEAD_BYTES = 64 * 1024


@dataclass
class UploadForm:
    """Decoded upload form: text fields plus the single file part."""

    fields: dict[str, str] = field(default_factory=dict)
    file_name: str | None = None
    file_data: bytes | None = None


def _decode_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""

    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(
                message="Request body is not valid base64",
                error_code=ERROR_CODE_INVALID_MULTIPART,
            ) from exc

    if isinstance(body, bytes):
        return body
    # API Gateway passes non-binary bodies as text; multipart bytes survive latin-1
    return body.encode("latin-1", errors="replace")


def parse_upload_form(event: dict[str, Any], *, max_file_size: int) -> UploadForm:
    """Parse the multipart body of an upload request.

    Args:
        event: API Gateway proxy event
        max_file_size: Upload size limit, used to reject oversized bodies early

    Returns:
        The decoded form

    Raises:
        ValidationError: If the body is not well-formed multipart/form-data
        FileSizeError: If the body is far larger than the upload limit
    """
    headers = {str(k).lower(): v for k, v in (event.get("headers") or {}).items()}
    content_type = headers.get("content-type", "")

    if not content_type.lower().startswith("multipart/form-data"):
        raise ValidationError(
            message="Content-Type must be multipart/form-data",
            error_code=ERROR_CODE_INVALID_MULTIPART,
            details={"content_type": content_type or None},
        )

    body = _decode_body(event)

    if len(body) > max_file_size + MULTIPART_OVERHEAD_BYTES:
        raise FileSizeError(
            message=f"File size exceeds {format_file_size(max_file_size)} limit",
            details={"max_size_bytes": max_file_size},
        )

    form = UploadForm()

    def on_field(part: Any) -> None:
        if part.field_name is None:
            return
        name = part.field_name.decode("utf-8", errors="replace")
        value = part.value or b""
        form.fields[name] = value.decode("utf-8", errors="replace")

    def on_file(part: Any) -> None:
        name = (part.field_name or b"").decode("utf-8", errors="replace")
        if name != UPLOAD_FILE_FIELD:
            logger.info("Ignoring unexpected file part", extra={"field": name})
            return

        file_object = part.file_object
        file_object.seek(0)
        form.file_data = file_object.read()
        if part.file_name:
            form.file_name = part.file_name.decode("utf-8", errors="replace")

    try:
        parser = create_form_parser(
            {"Content-Type": content_type, "Content-Length": str(len(body))},
            on_field,
            on_file,
            config={"MAX_MEMORY_FILE_SIZE": max_file_size + MULTIPART_OVERHEAD_BYTES},
        )
        parser.write(body)
        parser.finalize()
    except (FormParserError, ValueError) as exc:
        logger.warning("Malformed multipart body", extra={"error": str(exc)})
        raise ValidationError(
            message="Malformed multipart/form-data body",
            error_code=ERROR_CODE_INVALID_MULTIPART,
        ) from exc

    return form
