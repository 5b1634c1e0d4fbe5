"""Provider registry for managing resource providers."""

import logging
from typing import Dict, Optional, Type

from burrow.models.config import BurrowConfig
from burrow.providers.base import BaseProvider
from burrow.providers.build import BuildProvider
from burrow.providers.container import ContainerProvider
from burrow.providers.image import ImageProvider
from burrow.providers.volume import VolumeProvider
from burrow.utils.engine import EngineClient


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry for managing providers."""

    def __init__(self, engine: EngineClient):
        """Initialize provider registry around one engine client."""
        self.engine = engine
        self._providers: Dict[str, BaseProvider] = {}
        self._provider_classes: Dict[str, Type[BaseProvider]] = {
            "container": ContainerProvider,
            "image": ImageProvider,
            "volume": VolumeProvider,
            "build": BuildProvider,
        }

    async def initialize(self, config: BurrowConfig):
        """Initialize all providers with two-pass injection."""
        # Phase 1: Instantiate all providers
        for name, provider_class in self._provider_classes.items():
            try:
                self._providers[name] = provider_class(self.engine)
            except Exception as e:
                logger.error(f"Failed to instantiate provider {name}: {e}")
                raise

        # Phase 2: Initialize and inject registry
        for name, provider in self._providers.items():
            try:
                await provider.initialize(config, self)
                logger.debug(f"Initialized provider: {name}")
            except Exception as e:
                logger.error(f"Failed to initialize provider {name}: {e}")
                raise

    async def reconfigure(self, config: BurrowConfig):
        """Push a reloaded configuration into every provider."""
        for provider in self._providers.values():
            await provider.initialize(config, self)

    def get_provider(self, name: str) -> Optional[BaseProvider]:
        """Get a provider by name."""
        return self._providers.get(name)

    def list_providers(self) -> list[str]:
        """List available provider names."""
        return list(self._providers.keys())
