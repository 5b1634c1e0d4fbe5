"""Container engine client.

One ``EngineClient`` is built by the agent and handed to every component that
talks to the engine. It wraps the blocking docker SDK so each call runs in a
worker thread, and turns transport failures into ``EngineUnreachable``.
Engine-reported API errors (``docker.errors.APIError``) pass through for the
providers to translate.
"""

import asyncio
import io
import logging
import tarfile
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

import docker
import docker.errors
import requests.exceptions

from burrow.errors import EngineUnreachable


logger = logging.getLogger(__name__)

SSH_CONTAINER_PORT = 22


def make_build_context(recipe: str) -> io.BytesIO:
    """Pack recipe text as a tar archive holding a single Dockerfile."""
    data = recipe.encode("utf-8")
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        info = tarfile.TarInfo(name="Dockerfile")
        info.size = len(data)
        info.mtime = int(time.time())
        tar.addfile(info, io.BytesIO(data))
    buffer.seek(0)
    return buffer


class EngineClient:
    """Async facade over the docker SDK."""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 120, label: str = "burrow.managed"):
        """Initialize engine client; no connection is made until ``connect``."""
        self.base_url = base_url
        self.timeout = timeout
        self.label = label
        self.client: Optional[docker.DockerClient] = None

    async def connect(self):
        """Connect to the engine and verify it answers."""
        try:
            self.client = await asyncio.to_thread(self._open)
            await asyncio.to_thread(self.client.ping)
            logger.debug(f"Connected to container engine ({self.base_url or 'environment'})")
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Failed to connect to container engine: {e}")
            raise EngineUnreachable(f"Cannot reach container engine: {e}") from e

    def _open(self) -> docker.DockerClient:
        if self.base_url:
            return docker.DockerClient(base_url=self.base_url, timeout=self.timeout)
        return docker.from_env(timeout=self.timeout)

    async def close(self):
        """Close the underlying HTTP session."""
        if self.client:
            await asyncio.to_thread(self.client.close)
            self.client = None

    @property
    def sdk(self) -> docker.DockerClient:
        if self.client is None:
            raise EngineUnreachable("Container engine client is not connected")
        return self.client

    @property
    def api(self) -> docker.APIClient:
        return self.sdk.api

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call in a thread, mapping transport failures."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except requests.exceptions.ConnectionError as e:
            raise EngineUnreachable(f"Lost connection to container engine: {e}") from e

    async def ping(self) -> bool:
        """Check engine liveness."""
        try:
            await self._call(self.api.ping)
            return True
        except (EngineUnreachable, docker.errors.APIError):
            return False

    # -- Containers --

    async def list_containers(self, managed_only: bool = True) -> List[Dict[str, Any]]:
        """List containers (running or not), optionally only managed ones."""
        filters = {"label": [self.label]} if managed_only else None
        return await self._call(self.api.containers, all=True, filters=filters)

    async def published_ports(self) -> Set[int]:
        """Host ports published by any container on the engine."""
        ports: Set[int] = set()
        for container in await self.list_containers(managed_only=False):
            for port_info in container.get("Ports") or []:
                public = port_info.get("PublicPort")
                if public:
                    ports.add(int(public))
        return ports

    async def create_container(
        self,
        image: str,
        name: str,
        ssh_port: int,
        binds: List[str],
        environment: Dict[str, str],
        restart_policy: str,
    ) -> str:
        """Create a managed container publishing SSH on ``ssh_port``.

        ``binds`` holds ``"volume:/mount/path"`` entries.
        """
        def _create():
            host_config = self.api.create_host_config(
                port_bindings={SSH_CONTAINER_PORT: ssh_port},
                binds=binds or None,
                restart_policy={"Name": restart_policy},
            )
            return self.api.create_container(
                image=image,
                name=name,
                hostname=name,
                labels={self.label: "true"},
                environment=environment or None,
                ports=[SSH_CONTAINER_PORT],
                host_config=host_config,
            )

        result = await self._call(_create)
        return result["Id"]

    async def start_container(self, container_id: str):
        await self._call(self.api.start, container_id)

    async def stop_container(self, container_id: str):
        await self._call(self.api.stop, container_id)

    async def remove_container(self, container_id: str, force: bool = True):
        await self._call(self.api.remove_container, container_id, force=force)

    async def inspect_container(self, container_id: str) -> Dict[str, Any]:
        return await self._call(self.api.inspect_container, container_id)

    # -- Images --

    async def list_images(self) -> List[Dict[str, Any]]:
        return await self._call(self.api.images)

    async def pull_image(self, reference: str):
        await self._call(self.sdk.images.pull, reference)

    async def inspect_image(self, reference: str) -> Dict[str, Any]:
        return await self._call(self.api.inspect_image, reference)

    async def remove_image(self, reference: str, force: bool = True):
        await self._call(self.api.remove_image, reference, force=force)

    def build_stream(self, recipe: str, tag: str) -> Iterator[Dict[str, Any]]:
        """Start a build and return the engine's decoded progress stream.

        Blocking; meant to be iterated on a worker thread.
        """
        return self.api.build(
            fileobj=make_build_context(recipe),
            custom_context=True,
            tag=tag,
            rm=True,
            forcerm=True,
            decode=True,
            labels={self.label: "true"},
        )

    # -- Volumes --

    async def list_volumes(self) -> List[Dict[str, Any]]:
        result = await self._call(self.api.volumes, filters={"label": self.label})
        return (result or {}).get("Volumes") or []

    async def create_volume(self, name: str) -> Dict[str, Any]:
        return await self._call(self.api.create_volume, name, labels={self.label: "true"})

    async def remove_volume(self, name: str):
        await self._call(self.api.remove_volume, name)

    async def list_volume_files(self, name: str, image: str) -> str:
        """Run ``find`` over the volume in a throwaway container.

        The volume is mounted read-only at ``/data``; returns raw stdout.
        """
        output = await self._call(
            self.sdk.containers.run,
            image,
            ["find", "/data", "-type", "f"],
            volumes={name: {"bind": "/data", "mode": "ro"}},
            remove=True,
            stdout=True,
            stderr=False,
        )
        return output.decode("utf-8", errors="replace")
