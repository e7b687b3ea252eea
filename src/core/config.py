"""Service configuration loaded from environment variables."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.utils.constants import (
    ALLOWED_MIME_TYPES,
    DEFAULT_AWS_REGION,
    DEFAULT_BACKOFF_BASE_SECONDS,
    DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_JOB_CLAIM_TTL_SECONDS,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_JWT_ALGORITHM,
    DEFAULT_MAX_IMAGE_PIXELS,
    DEFAULT_MAX_JOB_ATTEMPTS,
    DEFAULT_METRICS_NAMESPACE,
    DEFAULT_MAX_OUTPUT_DIMENSION,
    DEFAULT_USER_IMAGE_QUOTA,
    DEFAULT_WORKER_POOL_SIZE,
    ENV_ALLOWED_CONTENT_TYPES,
    ENV_AWS_ENDPOINT_URL,
    ENV_AWS_REGION,
    ENV_BACKOFF_BASE_SECONDS,
    ENV_BACKOFF_MAX_SECONDS,
    ENV_IMAGE_JOB_QUEUE_URL,
    ENV_IMAGE_METADATA_TABLE_NAME,
    ENV_IMAGE_PUBLIC_BASE_URL,
    ENV_IMAGE_QUOTA_TABLE_NAME,
    ENV_IMAGE_S3_BUCKET_NAME,
    ENV_JOB_CLAIM_TTL_SECONDS,
    ENV_JPEG_QUALITY,
    ENV_JWT_ALGORITHM,
    ENV_JWT_SECRET,
    ENV_MAX_IMAGE_PIXELS,
    ENV_MAX_JOB_ATTEMPTS,
    ENV_MAX_OUTPUT_DIMENSION,
    ENV_MAX_UPLOAD_SIZE_BYTES,
    ENV_METRICS_NAMESPACE,
    ENV_OUTPUT_CONTENT_TYPE,
    ENV_USER_IMAGE_QUOTA,
    ENV_WORKER_POOL_SIZE,
    MAX_FILE_SIZE,
)

_ENV_FIELDS: dict[str, str] = {
    "aws_endpoint_url": ENV_AWS_ENDPOINT_URL,
    "aws_region": ENV_AWS_REGION,
    "bucket_name": ENV_IMAGE_S3_BUCKET_NAME,
    "metadata_table_name": ENV_IMAGE_METADATA_TABLE_NAME,
    "quota_table_name": ENV_IMAGE_QUOTA_TABLE_NAME,
    "job_queue_url": ENV_IMAGE_JOB_QUEUE_URL,
    "public_base_url": ENV_IMAGE_PUBLIC_BASE_URL,
    "max_upload_size_bytes": ENV_MAX_UPLOAD_SIZE_BYTES,
    "allowed_content_types": ENV_ALLOWED_CONTENT_TYPES,
    "user_image_quota": ENV_USER_IMAGE_QUOTA,
    "worker_pool_size": ENV_WORKER_POOL_SIZE,
    "max_job_attempts": ENV_MAX_JOB_ATTEMPTS,
    "backoff_base_seconds": ENV_BACKOFF_BASE_SECONDS,
    "backoff_max_seconds": ENV_BACKOFF_MAX_SECONDS,
    "job_claim_ttl_seconds": ENV_JOB_CLAIM_TTL_SECONDS,
    "jpeg_quality": ENV_JPEG_QUALITY,
    "max_output_dimension": ENV_MAX_OUTPUT_DIMENSION,
    "max_image_pixels": ENV_MAX_IMAGE_PIXELS,
    "output_content_type": ENV_OUTPUT_CONTENT_TYPE,
    "jwt_secret": ENV_JWT_SECRET,
    "jwt_algorithm": ENV_JWT_ALGORITHM,
}


class ServiceSettings(BaseModel):
    """Externally configurable limits and infrastructure names.

    Every field maps to one environment variable (see ``_ENV_FIELDS``).
    Unset variables fall back to the defaults in ``core.utils.constants``.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    aws_endpoint_url: str | None = None
    aws_region: str = DEFAULT_AWS_REGION

    bucket_name: str | None = None
    metadata_table_name: str | None = None
    quota_table_name: str | None = None
    job_queue_url: str | None = None
    public_base_url: str | None = None

    max_upload_size_bytes: int = Field(MAX_FILE_SIZE, gt=0)
    allowed_content_types: frozenset[str] = ALLOWED_MIME_TYPES
    user_image_quota: int = Field(DEFAULT_USER_IMAGE_QUOTA, ge=1)

    worker_pool_size: int = Field(DEFAULT_WORKER_POOL_SIZE, ge=1, le=64)
    max_job_attempts: int = Field(DEFAULT_MAX_JOB_ATTEMPTS, ge=1)
    backoff_base_seconds: float = Field(DEFAULT_BACKOFF_BASE_SECONDS, ge=0)
    backoff_max_seconds: float = Field(DEFAULT_BACKOFF_MAX_SECONDS, ge=0)
    job_claim_ttl_seconds: int = Field(DEFAULT_JOB_CLAIM_TTL_SECONDS, gt=0)

    jpeg_quality: int = Field(DEFAULT_JPEG_QUALITY, ge=1, le=95)
    max_output_dimension: int = Field(DEFAULT_MAX_OUTPUT_DIMENSION, gt=0)
    max_image_pixels: int = Field(DEFAULT_MAX_IMAGE_PIXELS, gt=0)
    output_content_type: str | None = None

    jwt_secret: str | None = None
    jwt_algorithm: str = DEFAULT_JWT_ALGORITHM

    @field_validator("allowed_content_types", mode="before")
    @classmethod
    def split_content_types(cls, value: object) -> object:
        """Accept a comma-separated string as well as any iterable."""
        if isinstance(value, str):
            return frozenset(v.strip().lower() for v in value.split(",") if v.strip())
        return value

    @field_validator("allowed_content_types")
    @classmethod
    def validate_content_types(cls, value: frozenset[str]) -> frozenset[str]:
        unsupported = value - ALLOWED_MIME_TYPES
        if unsupported:
            raise ValueError(
                f"Unsupported content types: {', '.join(sorted(unsupported))}"
            )
        if not value:
            raise ValueError("At least one content type must be allowed")
        return value

    @field_validator("output_content_type")
    @classmethod
    def validate_output_content_type(cls, value: str | None) -> str | None:
        if value and value not in ALLOWED_MIME_TYPES:
            raise ValueError(f"Unsupported output content type: {value}")
        return value or None

    @model_validator(mode="after")
    def validate_backoff(self) -> ServiceSettings:
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("BACKOFF_MAX_SECONDS must be >= BACKOFF_BASE_SECONDS")
        return self

    @classmethod
    def from_env(cls) -> ServiceSettings:
        """Build settings from the current process environment."""
        values = {
            field: os.environ[env_name]
            for field, env_name in _ENV_FIELDS.items()
            if os.environ.get(env_name, "").strip()
        }
        return cls(**values)

    def require(self, field: str) -> str:
        """Return a mandatory string setting or fail with the env var name."""
        value = getattr(self, field)
        if not value:
            raise RuntimeError(f"{_ENV_FIELDS[field]} environment variable is not set")
        return str(value)


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Return process-wide settings (cached; call ``get_settings.cache_clear()`` in tests)."""
    return ServiceSettings.from_env()


def metrics_namespace() -> str:
    """CloudWatch namespace for every ``Metrics`` instance; flushing without one raises."""
    return os.environ.get(ENV_METRICS_NAMESPACE) or DEFAULT_METRICS_NAMESPACE
