"""Volume provider for managed named volumes."""

import logging
from typing import List

import docker.errors

from burrow.errors import BurrowError, EngineError, ImageNotFound, VolumeNotFound
from burrow.models.image import VolumeInfo
from burrow.providers.base import BaseProvider, ProviderStatus


logger = logging.getLogger(__name__)

VOLUME_ROOT = "/data"


class VolumeProvider(BaseProvider):
    """Provider for labelled volumes."""

    async def status(self, name: str) -> ProviderStatus:
        """Check if a managed volume exists."""
        volumes = await self.engine.list_volumes()
        if any(v.get("Name") == name for v in volumes):
            return ProviderStatus.PRESENT
        return ProviderStatus.ABSENT

    async def list(self) -> List[VolumeInfo]:
        """List managed volumes."""
        return [
            VolumeInfo(
                name=v["Name"],
                driver=v.get("Driver") or "local",
                mountpoint=v.get("Mountpoint") or "",
                created_at=v.get("CreatedAt") or "",
            )
            for v in await self.engine.list_volumes()
        ]

    async def create(self, name: str) -> None:
        """Create a managed volume."""
        if await self.status(name) == ProviderStatus.PRESENT:
            logger.debug(f"Volume {name} already present")
            return

        logger.info(f"Creating volume {name}")
        try:
            await self.engine.create_volume(name)
        except docker.errors.APIError as e:
            logger.error(f"Failed to create volume {name}: {e}")
            raise BurrowError(f"Failed to create volume {name}: {e}") from e

    async def remove(self, name: str) -> None:
        """Remove a volume."""
        logger.info(f"Removing volume {name}")
        try:
            await self.engine.remove_volume(name)
        except docker.errors.NotFound as e:
            raise VolumeNotFound(f"Volume {name} not found") from e
        except docker.errors.APIError as e:
            logger.error(f"Failed to remove volume {name}: {e}")
            raise BurrowError(f"Failed to remove volume {name}: {e}") from e

    async def files(self, name: str) -> List[str]:
        """Paths of the regular files in a managed volume, relative to its root."""
        # The engine would silently create an unknown volume on mount
        if await self.status(name) != ProviderStatus.PRESENT:
            raise VolumeNotFound(f"Volume {name} not found")

        image = self.config.engine.helper_image
        logger.debug(f"Listing files in volume {name} with {image}")
        try:
            output = await self.engine.list_volume_files(name, image)
        except docker.errors.ImageNotFound as e:
            raise ImageNotFound(f"Helper image {image} not found") from e
        except (docker.errors.ContainerError, docker.errors.APIError) as e:
            logger.error(f"Listing volume {name} failed: {e}")
            raise EngineError(f"Failed to list files in volume {name}: {e}") from e

        prefix = VOLUME_ROOT + "/"
        files = []
        for line in output.splitlines():
            path = line.strip()
            if path.startswith(prefix):
                files.append(path[len(prefix):])
        return sorted(files)
