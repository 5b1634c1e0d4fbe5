"""Base provider interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

from burrow.models.config import BurrowConfig
from burrow.utils.engine import EngineClient

if TYPE_CHECKING:
    from burrow.providers.registry import ProviderRegistry


class ProviderStatus(Enum):
    """Provider resource status."""
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"
    ERROR = "error"


class BaseProvider(ABC):
    """Base class for engine-backed providers.

    Providers receive the shared engine client at construction and their
    configuration (plus the registry, for cross-provider lookups) in
    ``initialize``.
    """

    def __init__(self, engine: EngineClient):
        self.engine = engine
        self.config: BurrowConfig = BurrowConfig()

    async def initialize(self, config: BurrowConfig, registry: "ProviderRegistry") -> None:
        """Initialize the provider with configuration."""
        self.config = config

    @property
    def label(self) -> str:
        return self.config.engine.label

    @abstractmethod
    async def status(self, name: str) -> ProviderStatus:
        """Check whether a resource exists on the engine."""
        pass
