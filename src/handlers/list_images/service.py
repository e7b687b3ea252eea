"""
Business logic for listing an owner's images.
"""

from aws_lambda_powertools import Logger

from core.config import ServiceSettings
from core.filters.offset_pagination import OffsetPagination
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.models.image import ImageMeta, ListImagesResponse
from core.repositories.metadata_repository import ImageMetadataRepository
from core.utils.constants import DEFAULT_LIMIT, DEFAULT_OFFSET

logger = Logger(UTC=True)


class ListService:
    """Application service responsible for listing images.

    Images are returned newest first. Every image of the owner is read
    (the quota keeps that small) and paginated in memory.
    """

    def __init__(
        self,
        *,
        metadata: ImageMetadataRepository | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        self.metadata = metadata or DynamoDBMetadata(settings=settings)

    def list_images(
        self,
        *,
        owner_id: str,
        offset: int = DEFAULT_OFFSET,
        limit: int = DEFAULT_LIMIT,
    ) -> ListImagesResponse:
        records = self.metadata.list_owner_images(owner_id=owner_id)
        records.sort(key=lambda r: (r.uploaded_at, r.image_id), reverse=True)

        page, pagination = OffsetPagination.paginate(records, offset=offset, limit=limit)

        logger.debug(
            "Images listed",
            extra={"owner_id": owner_id, "total": len(records), "returned": len(page)},
        )

        return ListImagesResponse(
            images=[ImageMeta.from_record(record) for record in page],
            total_count=len(records),
            returned_count=len(page),
            pagination=pagination,
        )
