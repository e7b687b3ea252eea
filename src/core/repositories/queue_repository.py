"""Abstract contract for the job work queue."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from core.models.job import Job


@dataclass(frozen=True)
class ReceivedJob:
    """A job taken from the queue together with its delivery handle."""

    job: Job
    receipt_handle: str
    message_id: str


class JobQueueRepository(ABC):
    """Contract for enqueueing and consuming transform jobs.

    Implementations could be SQS, Redis lists, etc.
    """

    @abstractmethod
    def enqueue(self, *, job: Job, delay_seconds: int = 0) -> str:
        """Publish a job and return the message id.

        Raises:
            JobQueueError: If the queue cannot be reached
        """

    @abstractmethod
    def receive(self, *, max_messages: int = 1, wait_seconds: int = 0) -> list[ReceivedJob]:
        """Receive up to ``max_messages`` jobs, long-polling up to ``wait_seconds``.

        Malformed messages are dropped from the queue and not returned.

        Raises:
            JobQueueError: If the queue cannot be reached
        """

    @abstractmethod
    def acknowledge(self, *, receipt_handle: str) -> None:
        """Remove a processed message from the queue.

        Raises:
            JobQueueError: If the queue cannot be reached
        """
