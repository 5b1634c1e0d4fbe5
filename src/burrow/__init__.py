"""
Burrow - disposable SSH-ready development containers.

Builds an image per container with a freshly generated SSH key baked in,
publishes SSH on a free host port and hands back the command to connect.
"""

__version__ = "0.3.0"

from burrow.models.config import BurrowConfig
from burrow.models.container import ContainerDescriptor, ProvisioningRequest, ProvisionResult

__all__ = [
    "BurrowConfig",
    "ContainerDescriptor",
    "ProvisioningRequest",
    "ProvisionResult",
]
