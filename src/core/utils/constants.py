"""Global constants used throughout the application.

This module centralizes all magic numbers, string literals, and default
configuration values used across multiple modules. Runtime values are read
from the environment by ``core.config``; the values here are only defaults.
"""

from typing import Final

# ============================================================================
# Error Codes
# ============================================================================


# Validation Errors
ERROR_CODE_VALIDATION_FAILED = "VALIDATION_FAILED"
ERROR_CODE_UNSUPPORTED_MIME_TYPE = "UNSUPPORTED_MIME_TYPE"
ERROR_CODE_FILE_SIZE_EXCEEDED = "FILE_SIZE_EXCEEDED"
ERROR_CODE_INVALID_MULTIPART = "INVALID_MULTIPART"

# Transform Errors (deterministic, never retried)
ERROR_CODE_INVALID_CROP_REGION = "INVALID_CROP_REGION"
ERROR_CODE_INVALID_RESIZE = "INVALID_RESIZE"
ERROR_CODE_INVALID_COLOR = "INVALID_COLOR"
ERROR_CODE_IMAGE_DECODE_FAILED = "IMAGE_DECODE_FAILED"
ERROR_CODE_IMAGE_ENCODE_FAILED = "IMAGE_ENCODE_FAILED"

# Auth / Ownership Errors
ERROR_CODE_UNAUTHORIZED = "UNAUTHORIZED"
ERROR_CODE_FORBIDDEN = "FORBIDDEN"

# Not Found Errors
ERROR_CODE_RESOURCE_NOT_FOUND = "NOT_FOUND"
ERROR_CODE_IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"

# Quota Errors
ERROR_CODE_QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

# Storage Errors
ERROR_CODE_STORAGE = "STORAGE_ERROR"
ERROR_CODE_IMAGE_UPLOAD_FAILED = "IMAGE_UPLOAD_FAILED"
ERROR_CODE_IMAGE_DOWNLOAD_FAILED = "IMAGE_DOWNLOAD_FAILED"
ERROR_CODE_IMAGE_DELETE_FAILED = "IMAGE_DELETE_FAILED"

# Metadata / DynamoDB Errors
ERROR_CODE_METADATA_OPERATION_FAILED = "METADATA_OPERATION_FAILED"
ERROR_CODE_METADATA_CREATE_FAILED = "METADATA_CREATE_FAILED"
ERROR_CODE_METADATA_FETCH_FAILED = "METADATA_FETCH_FAILED"
ERROR_CODE_METADATA_UPDATE_FAILED = "METADATA_UPDATE_FAILED"
ERROR_CODE_METADATA_DELETE_FAILED = "METADATA_DELETE_FAILED"
ERROR_CODE_METADATA_LIST_FAILED = "METADATA_LIST_FAILED"
ERROR_CODE_METADATA_COUNT_FAILED = "METADATA_COUNT_FAILED"
ERROR_CODE_METADATA_INVALID_STATE = "METADATA_INVALID_STATE"

# Job Queue Errors
ERROR_CODE_JOB_QUEUE = "JOB_QUEUE_ERROR"
ERROR_CODE_ENQUEUE_FAILED = "ENQUEUE_FAILED"
ERROR_CODE_MAX_ATTEMPTS_EXCEEDED = "MAX_ATTEMPTS_EXCEEDED"

# Internal / Unexpected
ERROR_CODE_INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# File Upload Constraints
# ============================================================================

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB in bytes

MIME_TYPE_EXTENSION_MAP: Final[dict[str, str]] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
}

# Pillow format names used when re-encoding
MIME_TYPE_PIL_FORMAT_MAP: Final[dict[str, str]] = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
}

ALLOWED_MIME_TYPES: Final[frozenset[str]] = frozenset(MIME_TYPE_EXTENSION_MAP.keys())

UPLOAD_FILE_FIELD = "file"


# ============================================================================
# Quota / Processing Defaults
# ============================================================================

DEFAULT_USER_IMAGE_QUOTA = 20
DEFAULT_WORKER_POOL_SIZE = 4
DEFAULT_MAX_JOB_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE_SECONDS = 2.0
DEFAULT_BACKOFF_MAX_SECONDS = 300.0
DEFAULT_JOB_CLAIM_TTL_SECONDS = 300
DEFAULT_JPEG_QUALITY = 85
DEFAULT_MAX_OUTPUT_DIMENSION = 10_000
DEFAULT_MAX_IMAGE_PIXELS = 50_000_000
DEFAULT_TINT_OPACITY = 0.5

# SQS caps DelaySeconds at 15 minutes
SQS_MAX_DELAY_SECONDS = 900
SQS_MAX_RECEIVE_BATCH = 10
SQS_WAIT_TIME_SECONDS = 20


# ============================================================================
# Storage Layout
# ============================================================================

ORIGINALS_PREFIX = "originals"
PROCESSED_PREFIX = "processed"


# ============================================================================
# Pagination Constraints
# ============================================================================

DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_OFFSET = 0

OWNER_UPLOADED_INDEX = "owner-uploaded-index"


# ============================================================================
# API Gateway Configuration
# ============================================================================

API_SCHEMA_VERSION = "1"

CORS_ORIGIN = "*"
CORS_METHODS = "GET,POST,DELETE,OPTIONS"
CORS_HEADERS = "Content-Type,Authorization"
EXPOSE_HEADERS = "Content-Type,Content-Length"
DEFAULT_CONTENT_TYPE = "application/json"

AUTHORIZATION_HEADER = "authorization"
BEARER_PREFIX = "Bearer "
DEFAULT_JWT_ALGORITHM = "HS256"

# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_AWS_ENDPOINT_URL = "AWS_ENDPOINT_URL"
ENV_AWS_REGION = "AWS_REGION"
ENV_IMAGE_S3_BUCKET_NAME = "IMAGE_S3_BUCKET_NAME"
ENV_IMAGE_METADATA_TABLE_NAME = "IMAGE_METADATA_TABLE_NAME"
ENV_IMAGE_QUOTA_TABLE_NAME = "IMAGE_QUOTA_TABLE_NAME"
ENV_IMAGE_JOB_QUEUE_URL = "IMAGE_JOB_QUEUE_URL"
ENV_IMAGE_PUBLIC_BASE_URL = "IMAGE_PUBLIC_BASE_URL"
ENV_MAX_UPLOAD_SIZE_BYTES = "MAX_UPLOAD_SIZE_BYTES"
ENV_ALLOWED_CONTENT_TYPES = "ALLOWED_CONTENT_TYPES"
ENV_USER_IMAGE_QUOTA = "USER_IMAGE_QUOTA"
ENV_WORKER_POOL_SIZE = "WORKER_POOL_SIZE"
ENV_MAX_JOB_ATTEMPTS = "MAX_JOB_ATTEMPTS"
ENV_BACKOFF_BASE_SECONDS = "BACKOFF_BASE_SECONDS"
ENV_BACKOFF_MAX_SECONDS = "BACKOFF_MAX_SECONDS"
ENV_JOB_CLAIM_TTL_SECONDS = "JOB_CLAIM_TTL_SECONDS"
ENV_JPEG_QUALITY = "JPEG_QUALITY"
ENV_MAX_OUTPUT_DIMENSION = "MAX_OUTPUT_DIMENSION"
ENV_MAX_IMAGE_PIXELS = "MAX_IMAGE_PIXELS"
ENV_OUTPUT_CONTENT_TYPE = "OUTPUT_CONTENT_TYPE"
ENV_JWT_SECRET = "JWT_SECRET"
ENV_JWT_ALGORITHM = "JWT_ALGORITHM"
ENV_METRICS_NAMESPACE = "POWERTOOLS_METRICS_NAMESPACE"

DEFAULT_AWS_REGION = "us-east-1"
DEFAULT_METRICS_NAMESPACE = "ImageProcessingService"

# ============================================================================
# Helper Functions
# ============================================================================


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted file size string
    """
    size: float = float(size_bytes)

    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0

    return f"{size:.1f} TB"
