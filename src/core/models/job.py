"""Job model: one asynchronous unit of transform work per image."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from core.models.transform import TransformRequest


class Job(BaseModel):
    """Immutable job snapshot carried in the queue message.

    A retry is a new message with ``attempt + 1``; the original job is
    never mutated.
    """

    model_config = ConfigDict(frozen=True)

    image_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    original_storage_key: str = Field(..., min_length=1)
    content_type: str
    request: TransformRequest
    attempt: int = Field(1, ge=1)

    def next_attempt(self) -> Job:
        return self.model_copy(update={"attempt": self.attempt + 1})

    def to_message(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_message(cls, body: str) -> Job:
        return cls.model_validate_json(body)


class JobOutcome(str, Enum):
    """Result of one processing invocation."""

    COMPLETED = "completed"
    FAILED = "failed"
    RETRY_SCHEDULED = "retry_scheduled"
    # Another worker holds a live claim; leave the message for redelivery
    BUSY = "busy"
    # Image already reached a terminal state (duplicate delivery)
    SKIPPED = "skipped"
    # Image was deleted; the result is thrown away
    DISCARDED = "discarded"

    @property
    def acknowledges_message(self) -> bool:
        return self is not JobOutcome.BUSY
