"""Pydantic models for configuration and validation."""

from burrow.models.config import (
    BurrowConfig,
    AgentConfig,
    KeysConfig,
    PortsConfig,
    EngineConfig,
    RecipesConfig,
)
from burrow.models.container import (
    ContainerDescriptor,
    ContainerState,
    ProvisioningRequest,
    ProvisionResult,
    VolumeMount,
)
from burrow.models.image import BuildEvent, ImageBuildResult, ImageInfo, VolumeInfo
from burrow.models.keys import SshKeyPair

__all__ = [
    "BurrowConfig",
    "AgentConfig",
    "KeysConfig",
    "PortsConfig",
    "EngineConfig",
    "RecipesConfig",
    "ContainerDescriptor",
    "ContainerState",
    "ProvisioningRequest",
    "ProvisionResult",
    "VolumeMount",
    "BuildEvent",
    "ImageBuildResult",
    "ImageInfo",
    "VolumeInfo",
    "SshKeyPair",
]
