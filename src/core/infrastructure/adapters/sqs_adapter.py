"""Thin adapter for interacting with Amazon SQS."""

from typing import Any, Protocol

import boto3

from core.config import ServiceSettings, get_settings


class _Boto3SQSClient(Protocol):
    """Internal typing for boto3 SQS client (AWS-facing only)."""

    def send_message(self, *, QueueUrl: str, MessageBody: str, DelaySeconds: int) -> Any: ...

    def receive_message(
        self,
        *,
        QueueUrl: str,
        MaxNumberOfMessages: int,
        WaitTimeSeconds: int,
    ) -> dict[str, Any]: ...

    def delete_message(self, *, QueueUrl: str, ReceiptHandle: str) -> Any: ...


class SQSAdapterProtocol(Protocol):
    """Minimal SQS adapter protocol (repository-facing)."""

    def send_message(self, *, body: str, delay_seconds: int = 0) -> str: ...

    def receive_messages(
        self, *, max_messages: int, wait_seconds: int
    ) -> list[dict[str, Any]]: ...

    def delete_message(self, *, receipt_handle: str) -> None: ...


class SQSAdapter:
    """Low-level SQS operations (mechanical, no error handling).

    This adapter:
    - Wraps boto3 SQS client for the job queue
    - Does NOT handle errors (lets them bubble up)
    - Domain implementations catch and translate errors
    """

    def __init__(self, settings: ServiceSettings | None = None) -> None:
        """Create SQS client from service settings."""
        settings = settings or get_settings()

        self.queue_url = settings.require("job_queue_url")
        self._client: _Boto3SQSClient = boto3.client(
            "sqs",
            endpoint_url=settings.aws_endpoint_url,
            region_name=settings.aws_region,
        )

    def send_message(self, *, body: str, delay_seconds: int = 0) -> str:
        """Publish a message and return its id.
        Raises boto3 exceptions - caught by domain implementation.
        """
        response = self._client.send_message(
            QueueUrl=self.queue_url,
            MessageBody=body,
            DelaySeconds=delay_seconds,
        )
        return str(response["MessageId"])

    def receive_messages(self, *, max_messages: int, wait_seconds: int) -> list[dict[str, Any]]:
        """Long-poll for messages.
        Raises boto3 exceptions - caught by domain implementation.
        """
        response = self._client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
        )
        return list(response.get("Messages", []))

    def delete_message(self, *, receipt_handle: str) -> None:
        """Delete a message by receipt handle.
        Raises boto3 exceptions - caught by domain implementation.
        """
        self._client.delete_message(
            QueueUrl=self.queue_url,
            ReceiptHandle=receipt_handle,
        )
