"""Error types raised by burrow components."""

from typing import Optional


class BurrowError(Exception):
    """Base error for all burrow failures.

    ``step`` and ``target`` are filled in by the provisioning pipeline so the
    caller can tell which step failed and for which name, tag or port.
    """

    def __init__(self, message: str, *, step: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.target = target

    def __str__(self) -> str:
        if self.step and self.target:
            return f"{self.step} failed for {self.target}: {self.message}"
        if self.step:
            return f"{self.step} failed: {self.message}"
        return self.message


class InvalidRequest(BurrowError):
    """Malformed or contradictory provisioning input."""
    pass


class KeyGenerationFailed(BurrowError):
    """ssh-keygen could not produce a keypair."""
    pass


class KeyNotFound(BurrowError):
    """No private key stored for the requested name."""
    pass


class InvalidKeyMaterial(BurrowError):
    """Public key text cannot be embedded as a single line."""
    pass


class RecipeSynthesisFailed(BurrowError):
    """User recipe cannot be safely rewritten."""
    pass


class RecipeNotFound(BurrowError):
    """No saved recipe with the requested name."""
    pass


class PortExhausted(BurrowError):
    """Every candidate port is occupied or unbindable."""
    pass


class PortConflict(BurrowError):
    """The engine refused a host port binding (allocation race lost)."""
    pass


class BuildFailed(BurrowError):
    """Image build reported an error or the build stream broke."""
    pass


class ContainerCreateFailed(BurrowError):
    """The engine refused to create or start a container."""
    pass


class ContainerNotFound(BurrowError):
    """No container with the requested id or name."""
    pass


class ImageNotFound(BurrowError):
    """No image with the requested reference."""
    pass


class VolumeNotFound(BurrowError):
    """No volume with the requested name."""
    pass


class EngineUnreachable(BurrowError):
    """The container engine daemon cannot be reached."""
    pass


class EngineError(BurrowError):
    """The engine answered but rejected or failed the request."""
    pass
