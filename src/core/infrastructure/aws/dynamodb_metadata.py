"""DynamoDB-backed implementation of ImageMetadataRepository."""

from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from core.config import ServiceSettings
from core.infrastructure.adapters.dynamodb_adapter import DynamoDBAdapter, DynamoDBAdapterProtocol
from core.models.errors import MetadataOperationFailedError, QuotaExceededError
from core.models.image import ImageRecord, ProcessingStatus
from core.repositories.metadata_repository import ImageMetadataRepository
from core.utils.constants import (
    ERROR_CODE_METADATA_COUNT_FAILED,
    ERROR_CODE_METADATA_CREATE_FAILED,
    ERROR_CODE_METADATA_DELETE_FAILED,
    ERROR_CODE_METADATA_FETCH_FAILED,
    ERROR_CODE_METADATA_INVALID_STATE,
    ERROR_CODE_METADATA_LIST_FAILED,
    ERROR_CODE_METADATA_UPDATE_FAILED,
    OWNER_UPLOADED_INDEX,
)
from core.utils.time import utc_now_iso

logger = Logger(UTC=True)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _cancellation_codes(exc: ClientError) -> list[str]:
    """Per-item reason codes of a cancelled transaction, in request order."""
    reasons = exc.response.get("CancellationReasons") or []
    return [str(reason.get("Code", "None")) for reason in reasons]


def _normalize(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return value


class DynamoDBMetadata(ImageMetadataRepository):
    """DynamoDB-backed metadata storage with error handling.

    Image records live in the metadata table; per-owner image counts live
    in the quota table. Both are only ever changed together, inside one
    transaction.

    All boto3 errors are caught and translated into
    domain-specific errors with stable semantics.
    """

    def __init__(
        self,
        adapter: DynamoDBAdapterProtocol | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        """Initialize with DynamoDB adapter."""
        self._db: DynamoDBAdapterProtocol = adapter or DynamoDBAdapter(settings)

    # ------------------------------------------------------------------
    # Records and quota
    # ------------------------------------------------------------------

    def create_image(self, *, record: ImageRecord, quota: int) -> None:
        image_id = record.image_id
        owner_id = record.owner_id

        logger.debug("Creating image record", extra={"image_id": image_id, "owner_id": owner_id})

        items = [
            {
                "Update": {
                    "TableName": self._db.quota_table_name,
                    "Key": {"owner_id": owner_id},
                    "UpdateExpression": "ADD image_count :one",
                    "ConditionExpression": (
                        "attribute_not_exists(image_count) OR image_count < :quota"
                    ),
                    "ExpressionAttributeValues": {":one": 1, ":quota": quota},
                }
            },
            {
                "Put": {
                    "TableName": self._db.metadata_table_name,
                    "Item": record.to_item(),
                    "ConditionExpression": "attribute_not_exists(image_id)",
                }
            },
        ]

        try:
            self._db.transact_write(items=items)

        except ClientError as exc:
            if _error_code(exc) == TRANSACTION_CANCELED and self._quota_rejected(exc, owner_id, quota):
                logger.info(
                    "Image quota reached",
                    extra={"owner_id": owner_id, "quota": quota},
                )
                raise QuotaExceededError(
                    message=f"Image quota of {quota} reached; delete an image to upload another",
                    details={"quota": quota},
                ) from exc

            logger.error(
                "DynamoDB create transaction failed",
                extra={"image_id": image_id, "owner_id": owner_id, "error": str(exc)},
            )
            raise MetadataOperationFailedError(
                message="Unable to save image metadata at this time",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"image_id": image_id},
            ) from exc

        except BotoCoreError as exc:
            logger.error(
                "DynamoDB create transaction failed",
                extra={"image_id": image_id, "owner_id": owner_id, "error": str(exc)},
            )
            raise MetadataOperationFailedError(
                message="Unable to save image metadata at this time",
                error_code=ERROR_CODE_METADATA_CREATE_FAILED,
                details={"image_id": image_id},
            ) from exc

        logger.info("Image record created", extra={"image_id": image_id, "owner_id": owner_id})

    def _quota_rejected(self, exc: ClientError, owner_id: str, quota: int) -> bool:
        """Whether a cancelled create transaction failed on the quota condition."""
        codes = _cancellation_codes(exc)
        if codes:
            return codes[0] == "ConditionalCheckFailed"
        # Reasons missing from the error; fall back to reading the counter
        return self.count_owner_images(owner_id=owner_id) >= quota

    def fetch_image(self, *, image_id: str) -> ImageRecord | None:
        logger.debug("Fetching image record", extra={"image_id": image_id})

        try:
            response = self._db.get_item(key={"image_id": image_id})
        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB get_item failed", extra={"image_id": image_id, "error": str(exc)})
            raise MetadataOperationFailedError(
                message="Unable to retrieve image metadata",
                error_code=ERROR_CODE_METADATA_FETCH_FAILED,
                details={"image_id": image_id},
            ) from exc

        item = response.get("Item")
        if item is None:
            return None

        return self._to_record(item)

    def delete_image(self, *, image_id: str, owner_id: str) -> bool:
        logger.debug("Deleting image record", extra={"image_id": image_id, "owner_id": owner_id})

        items = [
            {
                "Delete": {
                    "TableName": self._db.metadata_table_name,
                    "Key": {"image_id": image_id},
                    "ConditionExpression": "attribute_exists(image_id) AND owner_id = :owner",
                    "ExpressionAttributeValues": {":owner": owner_id},
                }
            },
            {
                "Update": {
                    "TableName": self._db.quota_table_name,
                    "Key": {"owner_id": owner_id},
                    "UpdateExpression": "ADD image_count :minus_one",
                    "ConditionExpression": "image_count > :zero",
                    "ExpressionAttributeValues": {":minus_one": -1, ":zero": 0},
                }
            },
        ]

        try:
            self._db.transact_write(items=items)

        except ClientError as exc:
            if _error_code(exc) != TRANSACTION_CANCELED:
                logger.error(
                    "DynamoDB delete transaction failed",
                    extra={"image_id": image_id, "error": str(exc)},
                )
                raise MetadataOperationFailedError(
                    message="Unable to delete image metadata",
                    error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                    details={"image_id": image_id},
                ) from exc

            codes = _cancellation_codes(exc)
            if not codes or codes[0] == "ConditionalCheckFailed":
                logger.info("Image record already absent", extra={"image_id": image_id})
                return False

            # Counter is out of step with the records; still remove the record
            logger.error(
                "Quota counter inconsistent on delete",
                extra={"image_id": image_id, "owner_id": owner_id, "reasons": codes},
            )
            return self._delete_record_only(image_id=image_id, owner_id=owner_id)

        except BotoCoreError as exc:
            logger.error(
                "DynamoDB delete transaction failed",
                extra={"image_id": image_id, "error": str(exc)},
            )
            raise MetadataOperationFailedError(
                message="Unable to delete image metadata",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"image_id": image_id},
            ) from exc

        logger.info("Image record deleted", extra={"image_id": image_id, "owner_id": owner_id})
        return True

    def _delete_record_only(self, *, image_id: str, owner_id: str) -> bool:
        try:
            self._db.delete_item(
                key={"image_id": image_id},
                ConditionExpression="attribute_exists(image_id) AND owner_id = :owner",
                ExpressionAttributeValues={":owner": owner_id},
            )
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return False
            raise MetadataOperationFailedError(
                message="Unable to delete image metadata",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"image_id": image_id},
            ) from exc
        except BotoCoreError as exc:
            raise MetadataOperationFailedError(
                message="Unable to delete image metadata",
                error_code=ERROR_CODE_METADATA_DELETE_FAILED,
                details={"image_id": image_id},
            ) from exc
        return True

    def list_owner_images(self, *, owner_id: str) -> list[ImageRecord]:
        """List an owner's images, newest first.

        NOTE:
        - uploaded_at must be stored in ISO-8601 UTC format.
        - The GSI is eventually consistent; an upload may take a moment to appear.
        - Quota bounds the result size, so all pages are read.
        """
        logger.debug("Listing owner images", extra={"owner_id": owner_id})

        query_kwargs: dict[str, Any] = {
            "IndexName": OWNER_UPLOADED_INDEX,
            "KeyConditionExpression": Key("owner_id").eq(owner_id),
            "ScanIndexForward": False,
        }

        items: list[dict[str, Any]] = []

        try:
            while True:
                response = self._db.query(**query_kwargs)
                items.extend(response.get("Items", []))

                last_evaluated_key = response.get("LastEvaluatedKey")
                if not last_evaluated_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_evaluated_key

        except (ClientError, BotoCoreError) as exc:
            logger.error("DynamoDB query failed", extra={"owner_id": owner_id, "error": str(exc)})
            raise MetadataOperationFailedError(
                message="Unable to list images at this time",
                error_code=ERROR_CODE_METADATA_LIST_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        records = [self._to_record(item) for item in items]
        logger.info("Owner images listed", extra={"owner_id": owner_id, "count": len(records)})
        return records

    def count_owner_images(self, *, owner_id: str) -> int:
        try:
            response = self._db.get_quota_item(owner_id=owner_id)
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "DynamoDB quota read failed", extra={"owner_id": owner_id, "error": str(exc)}
            )
            raise MetadataOperationFailedError(
                message="Unable to count images at this time",
                error_code=ERROR_CODE_METADATA_COUNT_FAILED,
                details={"owner_id": owner_id},
            ) from exc

        item = response.get("Item") or {}
        return int(item.get("image_count", 0))

    # ------------------------------------------------------------------
    # Job state transitions
    # ------------------------------------------------------------------

    def claim_job(
        self,
        *,
        image_id: str,
        claim_token: str,
        attempt: int,
        now: int,
        lease_seconds: int,
    ) -> ImageRecord | None:
        attributes = self._conditional_update(
            image_id=image_id,
            UpdateExpression=(
                "SET claim_token = :token, claim_expires_at = :expires, "
                "attempt_count = :attempt, updated_at = :updated"
            ),
            ConditionExpression=(
                "processing_status = :pending AND "
                "(attribute_not_exists(claim_token) OR claim_expires_at < :now)"
            ),
            ExpressionAttributeValues={
                ":token": claim_token,
                ":expires": now + lease_seconds,
                ":attempt": attempt,
                ":updated": utc_now_iso(),
                ":pending": ProcessingStatus.PENDING.value,
                ":now": now,
            },
            ReturnValues="ALL_NEW",
        )

        if attributes is None:
            return None

        logger.debug("Job claimed", extra={"image_id": image_id, "attempt": attempt})
        return self._to_record(attributes)

    def release_job(self, *, image_id: str, claim_token: str) -> bool:
        attributes = self._conditional_update(
            image_id=image_id,
            UpdateExpression="REMOVE claim_token, claim_expires_at",
            ConditionExpression="claim_token = :token",
            ExpressionAttributeValues={":token": claim_token},
        )
        return attributes is not None

    def complete_job(
        self,
        *,
        image_id: str,
        claim_token: str,
        processed_storage_key: str,
        processed_url: str,
        processed_width: int,
        processed_height: int,
    ) -> bool:
        attributes = self._conditional_update(
            image_id=image_id,
            UpdateExpression=(
                "SET processing_status = :completed, processed_storage_key = :key, "
                "processed_url = :url, processed_width = :width, "
                "processed_height = :height, updated_at = :updated "
                "REMOVE claim_token, claim_expires_at, failure_reason"
            ),
            ConditionExpression="claim_token = :token AND processing_status = :pending",
            ExpressionAttributeValues={
                ":completed": ProcessingStatus.COMPLETED.value,
                ":pending": ProcessingStatus.PENDING.value,
                ":key": processed_storage_key,
                ":url": processed_url,
                ":width": processed_width,
                ":height": processed_height,
                ":updated": utc_now_iso(),
                ":token": claim_token,
            },
        )
        return attributes is not None

    def fail_job(
        self,
        *,
        image_id: str,
        reason: str,
        claim_token: str | None = None,
    ) -> bool:
        condition = "processing_status = :pending"
        values: dict[str, Any] = {
            ":failed": ProcessingStatus.FAILED.value,
            ":pending": ProcessingStatus.PENDING.value,
            ":reason": reason,
            ":updated": utc_now_iso(),
        }
        if claim_token is not None:
            condition += " AND claim_token = :token"
            values[":token"] = claim_token

        attributes = self._conditional_update(
            image_id=image_id,
            UpdateExpression=(
                "SET processing_status = :failed, failure_reason = :reason, "
                "updated_at = :updated REMOVE claim_token, claim_expires_at"
            ),
            ConditionExpression=condition,
            ExpressionAttributeValues=values,
        )
        return attributes is not None

    def _conditional_update(self, *, image_id: str, **kwargs: Any) -> dict[str, Any] | None:
        """Run a conditional update.

        Returns:
            The returned attributes (empty dict unless ReturnValues was set),
            or None when the condition did not hold
        """
        try:
            response = self._db.update_item(key={"image_id": image_id}, **kwargs)
        except ClientError as exc:
            if _error_code(exc) == CONDITIONAL_CHECK_FAILED:
                return None
            logger.error(
                "DynamoDB update_item failed",
                extra={"image_id": image_id, "error": str(exc)},
            )
            raise MetadataOperationFailedError(
                message="Unable to update image metadata",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc
        except BotoCoreError as exc:
            logger.error(
                "DynamoDB update_item failed",
                extra={"image_id": image_id, "error": str(exc)},
            )
            raise MetadataOperationFailedError(
                message="Unable to update image metadata",
                error_code=ERROR_CODE_METADATA_UPDATE_FAILED,
                details={"image_id": image_id},
            ) from exc

        return response.get("Attributes") or {}

    @staticmethod
    def _to_record(item: dict[str, Any]) -> ImageRecord:
        try:
            return ImageRecord.model_validate(_normalize(item))
        except PydanticValidationError as exc:
            logger.error(
                "Stored image record is malformed",
                extra={"image_id": item.get("image_id")},
            )
            raise MetadataOperationFailedError(
                message="Stored image metadata is invalid",
                error_code=ERROR_CODE_METADATA_INVALID_STATE,
                details={"image_id": item.get("image_id")},
            ) from exc
