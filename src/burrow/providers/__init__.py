"""Engine-backed resource providers for burrow."""

from burrow.providers.base import BaseProvider, ProviderStatus
from burrow.providers.registry import ProviderRegistry

__all__ = [
    "BaseProvider",
    "ProviderStatus",
    "ProviderRegistry",
]
