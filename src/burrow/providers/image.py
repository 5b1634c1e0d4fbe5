"""Image provider for listing, pulling and removing engine images."""

import logging
from datetime import datetime, timezone
from typing import List

import docker.errors

from burrow.errors import BurrowError, ImageNotFound
from burrow.models.image import ImageInfo
from burrow.providers.base import BaseProvider, ProviderStatus


logger = logging.getLogger(__name__)


class ImageProvider(BaseProvider):
    """Provider for engine images."""

    def image_tag(self, name: str) -> str:
        """Deterministic tag of the image built for a container or recipe name."""
        return f"{self.config.engine.image_prefix}{name}:latest"

    async def status(self, reference: str) -> ProviderStatus:
        """Check if image exists."""
        try:
            await self.engine.inspect_image(reference)
            return ProviderStatus.PRESENT
        except docker.errors.ImageNotFound:
            return ProviderStatus.ABSENT
        except docker.errors.APIError as e:
            logger.error(f"Error checking image {reference}: {e}")
            return ProviderStatus.ERROR

    async def list(self) -> List[ImageInfo]:
        """List images known to the engine."""
        images = await self.engine.list_images()
        return [
            ImageInfo(
                id=img["Id"],
                repo_tags=img.get("RepoTags") or [],
                size=img.get("Size") or 0,
                created=datetime.fromtimestamp(img.get("Created") or 0, tz=timezone.utc).isoformat(),
            )
            for img in images
        ]

    async def pull(self, reference: str) -> None:
        """Pull an image from its registry."""
        logger.info(f"Pulling image {reference}")
        try:
            await self.engine.pull_image(reference)
            logger.info(f"Image {reference} pulled successfully")
        except docker.errors.NotFound as e:
            raise ImageNotFound(f"Image {reference} not found in registry") from e
        except docker.errors.APIError as e:
            logger.error(f"Failed to pull image {reference}: {e}")
            raise BurrowError(f"Failed to pull image {reference}: {e}") from e

    async def remove(self, reference: str) -> None:
        """Remove an image; absent images are ignored."""
        if await self.status(reference) == ProviderStatus.ABSENT:
            logger.debug(f"Image {reference} already absent")
            return

        logger.info(f"Removing image {reference}")
        try:
            await self.engine.remove_image(reference, force=True)
        except docker.errors.APIError as e:
            logger.error(f"Failed to remove image {reference}: {e}")
            raise BurrowError(f"Failed to remove image {reference}: {e}") from e
