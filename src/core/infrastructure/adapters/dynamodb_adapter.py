"""Thin DynamoDB adapter wrapping boto3 table operations."""

from typing import Any, Protocol, cast

import boto3

from core.config import ServiceSettings, get_settings


class DynamoDBTable(Protocol):
    """Minimal DynamoDB Table protocol."""

    def get_item(self, *, Key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def update_item(self, *, Key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def delete_item(self, *, Key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def query(self, **kwargs: Any) -> dict[str, Any]: ...


class DynamoDBAdapterProtocol(Protocol):
    """Repository-facing DynamoDB adapter protocol."""

    metadata_table_name: str
    quota_table_name: str

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any]: ...
    def update_item(self, *, key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def delete_item(self, *, key: dict[str, Any], **kwargs: Any) -> dict[str, Any]: ...
    def query(self, **kwargs: Any) -> dict[str, Any]: ...
    def get_quota_item(self, *, owner_id: str) -> dict[str, Any]: ...
    def transact_write(self, *, items: list[dict[str, Any]]) -> dict[str, Any]: ...


class DynamoDBAdapter:
    """Low-level DynamoDB operations (mechanical, no error handling).

    This adapter:
    - Wraps boto3 DynamoDB resource for the metadata and quota tables
    - Does NOT handle errors (lets them bubble up)
    - Domain implementations catch and translate errors
    """

    def __init__(self, settings: ServiceSettings | None = None) -> None:
        """Initialize DynamoDB tables from service settings."""
        settings = settings or get_settings()

        self.metadata_table_name = settings.require("metadata_table_name")
        self.quota_table_name = settings.require("quota_table_name")

        dynamodb = boto3.resource(
            "dynamodb",
            endpoint_url=settings.aws_endpoint_url,
            region_name=settings.aws_region,
        )

        self.table: DynamoDBTable = cast(
            DynamoDBTable,
            dynamodb.Table(self.metadata_table_name),
        )
        self.quota_table: DynamoDBTable = cast(
            DynamoDBTable,
            dynamodb.Table(self.quota_table_name),
        )
        # The resource's client accepts native Python values, like the tables do
        self._client = dynamodb.meta.client

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any]:
        """Retrieve item by key with a strongly consistent read.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.get_item(Key=key, ConsistentRead=True)

    def update_item(self, *, key: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        """Conditionally update an item in the metadata table.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.update_item(Key=key, **kwargs)

    def delete_item(self, *, key: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        """Delete item by key.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.delete_item(Key=key, **kwargs)

    def query(self, **kwargs: Any) -> dict[str, Any]:
        """Execute DynamoDB query on the metadata table.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.table.query(**kwargs)

    def get_quota_item(self, *, owner_id: str) -> dict[str, Any]:
        """Read an owner's quota counter with a strongly consistent read.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self.quota_table.get_item(Key={"owner_id": owner_id}, ConsistentRead=True)

    def transact_write(self, *, items: list[dict[str, Any]]) -> dict[str, Any]:
        """Run a multi-table write transaction.

        Raises boto3 exceptions - caught by domain implementation.
        """
        return self._client.transact_write_items(TransactItems=items)
