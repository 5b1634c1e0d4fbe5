"""Container provider for managing engine containers."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import docker.errors

from burrow.errors import BurrowError, ContainerCreateFailed, ContainerNotFound, EngineError, PortConflict
from burrow.models.container import (
    ContainerDescriptor,
    ContainerState,
    VolumeMount,
    format_ssh_command,
)
from burrow.providers.base import BaseProvider, ProviderStatus
from burrow.utils.engine import SSH_CONTAINER_PORT


logger = logging.getLogger(__name__)

PORT_CONFLICT_MARKERS = (
    "port is already allocated",
    "address already in use",
    "bind for",
)


def _explain(error: docker.errors.APIError) -> str:
    return str(getattr(error, "explanation", None) or error)


def _is_port_conflict(error: docker.errors.APIError) -> bool:
    message = _explain(error).lower()
    return any(marker in message for marker in PORT_CONFLICT_MARKERS)


class ContainerProvider(BaseProvider):
    """Provider for managed containers on the engine."""

    async def status(self, name: str) -> ProviderStatus:
        """Check if container exists."""
        try:
            await self.engine.inspect_container(name)
            return ProviderStatus.PRESENT
        except docker.errors.NotFound:
            return ProviderStatus.ABSENT
        except docker.errors.APIError as e:
            logger.error(f"Error checking container {name}: {e}")
            return ProviderStatus.ERROR

    async def create(
        self,
        name: str,
        image: str,
        ssh_port: int,
        volumes: Optional[List[VolumeMount]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create a managed container and return its id."""
        # One entry per mount; a volume may be mounted at several paths
        binds = [f"{v.name}:{v.mount_path}" for v in volumes or []]
        logger.info(f"Creating container {name} from {image} (ssh port {ssh_port})")

        try:
            container_id = await self.engine.create_container(
                image=image,
                name=name,
                ssh_port=ssh_port,
                binds=binds,
                environment=dict(env or {}),
                restart_policy=self.config.engine.restart_policy,
            )
        except docker.errors.APIError as e:
            if _is_port_conflict(e):
                raise PortConflict(f"Host port {ssh_port} is already bound: {_explain(e)}") from e
            logger.error(f"Failed to create container {name}: {_explain(e)}")
            raise ContainerCreateFailed(f"Engine refused to create container {name}: {_explain(e)}") from e

        logger.debug(f"Created container {name} ({container_id[:12]})")
        return container_id

    async def start(self, container_id: str) -> None:
        """Start the container."""
        container_id = (await self._managed(container_id))["Id"]
        logger.info(f"Starting container {container_id[:12]}")
        try:
            await self.engine.start_container(container_id)
        except docker.errors.NotFound as e:
            raise ContainerNotFound(f"Container {container_id} not found") from e
        except docker.errors.APIError as e:
            if _is_port_conflict(e):
                raise PortConflict(f"Host port already bound: {_explain(e)}") from e
            logger.error(f"Failed to start container {container_id}: {_explain(e)}")
            raise ContainerCreateFailed(f"Engine refused to start container: {_explain(e)}") from e

    async def stop(self, container_id: str) -> None:
        """Stop the container."""
        container_id = (await self._managed(container_id))["Id"]
        logger.info(f"Stopping container {container_id[:12]}")
        try:
            await self.engine.stop_container(container_id)
        except docker.errors.NotFound as e:
            raise ContainerNotFound(f"Container {container_id} not found") from e
        except docker.errors.APIError as e:
            logger.error(f"Failed to stop container: {_explain(e)}")
            raise BurrowError(f"Failed to stop container {container_id}: {_explain(e)}") from e

    async def remove(self, container_id: str) -> None:
        """Force-remove the container."""
        container_id = (await self._managed(container_id))["Id"]
        logger.info(f"Removing container {container_id[:12]}")
        try:
            await self.engine.remove_container(container_id, force=True)
        except docker.errors.NotFound as e:
            raise ContainerNotFound(f"Container {container_id} not found") from e
        except docker.errors.APIError as e:
            logger.error(f"Failed to remove container: {_explain(e)}")
            raise BurrowError(f"Failed to remove container {container_id}: {_explain(e)}") from e

    async def _managed(self, container_id: str) -> Dict[str, Any]:
        """Inspect output of a container carrying the managed label.

        Containers without the label are reported as missing so that no
        operation touches containers burrow did not create.
        """
        try:
            attrs = await self.engine.inspect_container(container_id)
        except docker.errors.NotFound as e:
            raise ContainerNotFound(f"Container {container_id} not found") from e
        except docker.errors.APIError as e:
            logger.error(f"Failed to inspect container {container_id}: {_explain(e)}")
            raise EngineError(f"Failed to inspect container {container_id}: {_explain(e)}") from e

        labels = (attrs.get("Config") or {}).get("Labels") or {}
        if self.label not in labels:
            logger.debug(f"Container {container_id} is not managed by burrow")
            raise ContainerNotFound(f"Container {container_id} not found")
        return attrs

    async def inspect(self, container_id: str) -> ContainerDescriptor:
        """Describe one managed container."""
        return self.describe_inspect(await self._managed(container_id))

    async def list_managed(self) -> List[ContainerDescriptor]:
        """List managed containers."""
        try:
            summaries = await self.engine.list_containers(managed_only=True)
        except docker.errors.APIError as e:
            raise EngineError(f"Failed to list containers: {_explain(e)}") from e
        return [self.describe_summary(s) for s in summaries]

    def describe_inspect(self, attrs: Dict[str, Any]) -> ContainerDescriptor:
        """Build a descriptor from ``inspect_container`` output."""
        state = attrs.get("State") or {}
        ports = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
        bindings = ports.get(f"{SSH_CONTAINER_PORT}/tcp") or []
        ssh_port = int(bindings[0]["HostPort"]) if bindings and bindings[0].get("HostPort") else None

        return ContainerDescriptor(
            id=attrs["Id"],
            name=attrs.get("Name", "").lstrip("/"),
            image=(attrs.get("Config") or {}).get("Image", ""),
            status=state.get("Status", ""),
            state=ContainerState.from_engine(state.get("Status")),
            ssh_port=ssh_port,
            ssh_command=self._ssh_command(ssh_port),
            volumes=_volume_mounts(attrs.get("Mounts")),
            created_at=attrs.get("Created", ""),
        )

    def describe_summary(self, summary: Dict[str, Any]) -> ContainerDescriptor:
        """Build a descriptor from a ``containers`` listing entry."""
        ssh_port = None
        for port_info in summary.get("Ports") or []:
            if port_info.get("PrivatePort") == SSH_CONTAINER_PORT and port_info.get("PublicPort"):
                ssh_port = int(port_info["PublicPort"])
                break

        names = summary.get("Names") or [""]
        created = summary.get("Created")
        created_at = (
            datetime.fromtimestamp(created, tz=timezone.utc).isoformat() if created else ""
        )

        return ContainerDescriptor(
            id=summary["Id"],
            name=names[0].lstrip("/"),
            image=summary.get("Image", ""),
            status=summary.get("Status", ""),
            state=ContainerState.from_engine(summary.get("State")),
            ssh_port=ssh_port,
            ssh_command=self._ssh_command(ssh_port),
            volumes=_volume_mounts(summary.get("Mounts")),
            created_at=created_at,
        )

    def _ssh_command(self, ssh_port: Optional[int]) -> Optional[str]:
        if ssh_port is None:
            return None
        return format_ssh_command(ssh_port, user=self.config.engine.ssh_user)


def _volume_mounts(mounts: Optional[List[Dict[str, Any]]]) -> List[VolumeMount]:
    return [
        VolumeMount(name=m.get("Name", ""), mount_path=m["Destination"])
        for m in mounts or []
        if m.get("Type") == "volume" and m.get("Name")
    ]
