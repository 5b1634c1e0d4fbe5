"""Provisioning pipeline: keys, recipe, image, port, container."""

import asyncio
import inspect
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from burrow.agent.keys import KeyManager
from burrow.agent.ports import PortAllocator
from burrow.agent.recipe import synthesize_from_image, synthesize_from_recipe
from burrow.agent.recipes import RecipeStore
from burrow.errors import BuildFailed, BurrowError, InvalidRequest
from burrow.models.config import BurrowConfig
from burrow.models.container import (
    ContainerDescriptor,
    ContainerState,
    ProvisioningRequest,
    ProvisionResult,
)
from burrow.models.image import BuildEvent, ImageBuildResult
from burrow.providers import ProviderRegistry, ProviderStatus
from burrow.providers.build import LogSink


logger = logging.getLogger(__name__)

StateSink = Callable[[ContainerState], Any]
Undo = Tuple[str, Callable[[], Awaitable[None]]]


async def _notify(sink: Optional[Callable[..., Any]], *args):
    if sink is None:
        return
    result = sink(*args)
    if inspect.isawaitable(result):
        await result


class ProvisioningPipeline:
    """Sequences provisioning steps and reverses them on failure."""

    def __init__(
        self,
        config: BurrowConfig,
        provider_registry: ProviderRegistry,
        key_manager: KeyManager,
        port_allocator: PortAllocator,
        recipe_store: RecipeStore,
    ):
        """Initialize pipeline."""
        self.config = config
        self.provider_registry = provider_registry
        self.key_manager = key_manager
        self.port_allocator = port_allocator
        self.recipe_store = recipe_store

    def get_provider(self, name: str):
        provider = self.provider_registry.get_provider(name)
        if not provider:
            raise RuntimeError(f"{name.capitalize()} provider not available")
        return provider

    @contextmanager
    def _step(self, step: str, target: str):
        """Tag burrow errors raised inside with the failing step and target."""
        try:
            yield
        except BurrowError as e:
            if e.step is None:
                e.step = step
                e.target = target
            logger.error(f"Provisioning step '{step}' failed for {target}: {e.message}")
            raise

    def _display_key_path(self, name: str) -> str:
        display_dir = self.config.keys.display_dir
        if display_dir:
            return str(Path(display_dir) / f"{name}.pem")
        return str(self.key_manager.private_key_path(name))

    def _with_key(self, descriptor: ContainerDescriptor) -> ContainerDescriptor:
        return descriptor.with_key(self._display_key_path(descriptor.name), self.config.engine.ssh_user)

    async def _validate(self, request: ProvisioningRequest):
        if bool(request.image) == bool(request.dockerfile):
            raise InvalidRequest(
                "Exactly one of image or dockerfile must be provided", step="validate", target=request.name
            )

        containers = self.get_provider("container")
        if await containers.status(request.name) == ProviderStatus.PRESENT:
            raise InvalidRequest(
                f"Container {request.name} already exists", step="validate", target=request.name
            )

    async def provision(
        self,
        request: ProvisioningRequest,
        on_log: Optional[LogSink] = None,
        on_state: Optional[StateSink] = None,
    ) -> ProvisionResult:
        """Provision an SSH-ready container for ``request``."""
        await self._validate(request)

        name = request.name
        containers = self.get_provider("container")
        images = self.get_provider("image")
        builder = self.get_provider("build")

        undo: List[Undo] = []
        port: Optional[int] = None
        logger.info(f"Provisioning container {name}")

        try:
            with self._step("generate_key", name):
                keypair = await self.key_manager.generate(name)
            undo.append(("delete SSH key", lambda: self.key_manager.cleanup(name)))

            with self._step("synthesize_recipe", name):
                if request.dockerfile:
                    recipe = synthesize_from_recipe(request.dockerfile, keypair.public_key)
                else:
                    recipe = synthesize_from_image(request.image, keypair.public_key)

            tag = images.image_tag(name)
            await _notify(on_state, ContainerState.BUILDING)
            with self._step("build_image", tag):
                result = await builder.build(recipe, tag, on_log=on_log)
                if not result.success:
                    raise BuildFailed(result.error or "unknown build error")
            undo.append(("remove image", lambda: images.remove(tag)))

            with self._step("allocate_port", name):
                port = await self.port_allocator.allocate_ssh_port(owner=name)

            with self._step("create_container", f"{name} (port {port})"):
                container_id = await containers.create(
                    name=name,
                    image=tag,
                    ssh_port=port,
                    volumes=request.volumes,
                    env=request.env,
                )
            undo.append(("remove container", lambda: containers.remove(container_id)))

            with self._step("start_container", f"{name} (port {port})"):
                await containers.start(container_id)

            with self._step("inspect_container", name):
                descriptor = await containers.inspect(container_id)

        except (Exception, asyncio.CancelledError):
            await _notify(on_state, ContainerState.FAILED)
            await self._rollback(name, undo)
            raise
        finally:
            if port is not None:
                self.port_allocator.release(port)

        await _notify(on_state, descriptor.state)
        logger.info(f"Container {name} provisioned on SSH port {descriptor.ssh_port}")
        return ProvisionResult(
            container=self._with_key(descriptor),
            private_key_path=str(keypair.private_key_path),
        )

    async def _rollback(self, name: str, undo: List[Undo]):
        """Reverse completed side effects, newest first, best effort."""
        for description, action in reversed(undo):
            try:
                await action()
                logger.info(f"Rolled back {name}: {description}")
            except Exception as e:
                logger.warning(f"Rollback of {name} could not {description}: {e}")

    async def get_container(self, container_id: str) -> ContainerDescriptor:
        """Describe one managed container."""
        descriptor = await self.get_provider("container").inspect(container_id)
        return self._with_key(descriptor)

    async def list_containers(self) -> List[ContainerDescriptor]:
        """Describe all managed containers."""
        return [self._with_key(d) for d in await self.get_provider("container").list_managed()]

    async def start_container(self, container_id: str):
        await self.get_provider("container").start(container_id)

    async def stop_container(self, container_id: str):
        await self.get_provider("container").stop(container_id)

    async def remove_and_cleanup_keys(self, container_id: str) -> ContainerDescriptor:
        """Remove a container and delete the SSH key issued for it."""
        containers = self.get_provider("container")
        descriptor = await containers.inspect(container_id)

        await self.key_manager.cleanup(descriptor.name)
        await containers.remove(descriptor.id)
        logger.info(f"Removed container {descriptor.name} and its SSH key")

        return descriptor.model_copy(update={"state": ContainerState.REMOVED})

    async def get_private_key_material(self, container_id: str) -> bytes:
        """Private key of the container, looked up by id or name."""
        descriptor = await self.get_provider("container").inspect(container_id)
        return (await self.key_manager.read(descriptor.name)).encode()

    async def build_image(self, recipe: str, tag: str, on_log: Optional[LogSink] = None) -> ImageBuildResult:
        """Build raw recipe text as ``tag`` without SSH injection."""
        return await self.get_provider("build").build(recipe, tag, on_log=on_log)

    async def stream_build(self, recipe_name: str, tag: Optional[str] = None) -> AsyncIterator[BuildEvent]:
        """Start building a saved recipe.

        Raises ``RecipeNotFound`` up front; the returned iterator yields
        progress followed by one terminal event.
        """
        recipe = await self.recipe_store.load(recipe_name)
        tag = tag or self.get_provider("image").image_tag(recipe_name)
        logger.info(f"Building recipe {recipe_name} as {tag}")
        return self.get_provider("build").stream_build(recipe, tag)
