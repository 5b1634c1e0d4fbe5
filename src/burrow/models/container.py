"""Container request and descriptor models."""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"


class ContainerState(str, Enum):
    """Lifecycle state of a managed container."""
    CREATED = "created"
    BUILDING = "building"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    EXITED = "exited"
    FAILED = "failed"
    REMOVED = "removed"

    @classmethod
    def from_engine(cls, state: Optional[str]) -> "ContainerState":
        """Map an engine state string onto a lifecycle state."""
        mapping = {
            "running": cls.RUNNING,
            "restarting": cls.RUNNING,
            "created": cls.CREATED,
            "exited": cls.EXITED,
            "paused": cls.PAUSED,
            "dead": cls.FAILED,
        }
        return mapping.get((state or "").lower(), cls.STOPPED)


class VolumeMount(BaseModel):
    """Named volume mounted into a container."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., pattern=NAME_PATTERN, description="Volume name")
    mount_path: str = Field(..., alias="mountPath", min_length=1, description="Path inside the container")


class ProvisioningRequest(BaseModel):
    """Request to provision an SSH-reachable container."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., pattern=NAME_PATTERN, description="Container name")
    image: Optional[str] = Field(None, description="Base image reference")
    dockerfile: Optional[str] = Field(None, description="Raw build recipe text")
    volumes: List[VolumeMount] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)


class ContainerDescriptor(BaseModel):
    """Engine-side view of a managed container."""
    id: str
    name: str
    image: str
    status: str
    state: ContainerState
    ssh_port: Optional[int] = None
    ssh_command: Optional[str] = None
    volumes: List[VolumeMount] = Field(default_factory=list)
    created_at: str = ""

    def with_key(self, key_path: str, user: str = "root") -> "ContainerDescriptor":
        """Return a copy whose SSH command uses the given identity file."""
        if self.ssh_port is None:
            return self.model_copy(update={"ssh_command": None})
        return self.model_copy(update={"ssh_command": format_ssh_command(self.ssh_port, key_path, user)})


class ProvisionResult(BaseModel):
    """Outcome of a successful provisioning attempt."""
    container: ContainerDescriptor
    private_key_path: str


def format_ssh_command(port: int, key_path: Optional[str] = None, user: str = "root") -> str:
    """Build the ssh invocation for a published port."""
    if key_path:
        return f"ssh -i {key_path} -p {port} {user}@localhost"
    return f"ssh -p {port} {user}@localhost"
