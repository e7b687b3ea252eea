"""Business logic for counting an owner's images."""

from core.config import ServiceSettings, get_settings
from core.infrastructure.aws.dynamodb_metadata import DynamoDBMetadata
from core.repositories.metadata_repository import ImageMetadataRepository

from .models import ImageCountResponse


class CountService:
    """Reads the owner's quota counter, which always equals their image count."""

    def __init__(
        self,
        *,
        metadata: ImageMetadataRepository | None = None,
        settings: ServiceSettings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.metadata = metadata or DynamoDBMetadata(settings=self.settings)

    def count_images(self, owner_id: str) -> ImageCountResponse:
        return ImageCountResponse(
            count=self.metadata.count_owner_images(owner_id=owner_id),
            quota=self.settings.user_image_quota,
        )
