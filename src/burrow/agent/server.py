"""HTTP/REST/WebSocket server for agent communication."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from aiohttp import WSMsgType, web
from pydantic import ValidationError

from burrow.agent.pipeline import ProvisioningPipeline
from burrow.errors import (
    BurrowError,
    ContainerNotFound,
    EngineUnreachable,
    ImageNotFound,
    InvalidKeyMaterial,
    InvalidRequest,
    KeyNotFound,
    PortConflict,
    PortExhausted,
    RecipeNotFound,
    RecipeSynthesisFailed,
    VolumeNotFound,
)
from burrow.models.container import ContainerState, ProvisioningRequest


logger = logging.getLogger(__name__)


ERROR_STATUS = {
    InvalidRequest: 400,
    InvalidKeyMaterial: 400,
    RecipeSynthesisFailed: 400,
    ContainerNotFound: 404,
    ImageNotFound: 404,
    VolumeNotFound: 404,
    KeyNotFound: 404,
    RecipeNotFound: 404,
    PortConflict: 409,
    EngineUnreachable: 503,
    PortExhausted: 503,
}


def error_status(error: BaseException) -> int:
    """HTTP status for an error raised by a command."""
    for error_class, status in ERROR_STATUS.items():
        if isinstance(error, error_class):
            return status
    return 500


def _require(args: Dict[str, Any], key: str, what: str) -> str:
    value = args.get(key)
    if not value:
        raise InvalidRequest(f"{what} required")
    return value


class AgentServer:
    """Agent HTTP/WebSocket server."""

    def __init__(
        self,
        socket_path: Path,
        host: Optional[str],
        port: int,
        pipeline: ProvisioningPipeline,
    ):
        """Initialize server."""
        self.socket_path = Path(socket_path)
        self.host = host
        self.port = port
        self.pipeline = pipeline
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""
        # Management APIs (REST)
        self.app.router.add_post('/api/v1/command', self._handle_command)

        # Streaming APIs (WebSocket)
        self.app.router.add_get('/api/v1/stream/build', self._handle_stream_build)
        self.app.router.add_get('/api/v1/stream/provision', self._handle_stream_provision)

    def _provider(self, name: str):
        return self.pipeline.get_provider(name)

    async def start(self):
        """Start the server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        # Bind to Unix socket
        if self.socket_path.exists():
            self.socket_path.unlink()
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        site_unix = web.UnixSite(self.runner, str(self.socket_path))
        await site_unix.start()
        os.chmod(self.socket_path, 0o660)
        logger.info(f"Agent listening on unix:{self.socket_path}")

        # Bind to TCP if configured
        if self.host:
            site_tcp = web.TCPSite(self.runner, self.host, self.port)
            await site_tcp.start()
            logger.info(f"Agent listening on tcp://{self.host}:{self.port}")

    async def stop(self):
        """Stop the server."""
        if self.runner:
            await self.runner.cleanup()
        if self.socket_path.exists():
            self.socket_path.unlink()
        logger.info("Agent server stopped")

    async def _handle_command(self, request: web.Request) -> web.Response:
        """Handle standard REST command."""
        try:
            data = await request.json()
        except json.JSONDecodeError:
            return self._error_response(InvalidRequest("Request body must be JSON"))
        if not isinstance(data, dict):
            return self._error_response(InvalidRequest("Request body must be a JSON object"))

        command = data.get("command")
        args = data.get("args") or {}

        try:
            response_data = await self._process_command(command, args)
            return web.json_response({"success": True, "data": response_data})
        except ValidationError as e:
            return self._error_response(InvalidRequest(f"Invalid arguments: {e}"))
        except BurrowError as e:
            logger.warning(f"Command {command} failed: {e}")
            return self._error_response(e)
        except Exception as e:
            logger.error(f"Command error: {e}", exc_info=True)
            return self._error_response(e)

    def _error_response(self, error: BaseException) -> web.Response:
        return web.json_response(
            {"success": False, "error": str(error), "kind": type(error).__name__},
            status=error_status(error),
        )

    async def _process_command(self, command: str, args: Dict[str, Any]) -> Any:
        """Process the command logic."""
        handlers = {
            "ping": self._handle_ping,
            "list": self._handle_list,
            "inspect": self._handle_inspect,
            "provision": self._handle_provision,
            "start": self._handle_start,
            "stop": self._handle_stop,
            "remove": self._handle_remove,
            "ssh_key": self._handle_ssh_key,
            "image_list": self._handle_image_list,
            "image_pull": self._handle_image_pull,
            "image_build": self._handle_image_build,
            "volume_list": self._handle_volume_list,
            "volume_create": self._handle_volume_create,
            "volume_remove": self._handle_volume_remove,
            "volume_files": self._handle_volume_files,
            "recipe_list": self._handle_recipe_list,
            "recipe_get": self._handle_recipe_get,
            "recipe_save": self._handle_recipe_save,
            "recipe_delete": self._handle_recipe_delete,
        }

        handler = handlers.get(command)
        if not handler:
            raise InvalidRequest(f"Unknown command: {command}")

        return await handler(args)

    # -- Streams --

    async def _handle_stream_build(self, request: web.Request) -> web.StreamResponse:
        """Stream build events for a saved recipe."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        recipe_name = request.query.get("recipe")
        tag = request.query.get("tag") or None

        try:
            if not recipe_name:
                raise InvalidRequest("Recipe name required")
            events = await self.pipeline.stream_build(recipe_name, tag)
        except Exception as e:
            if not isinstance(e, BurrowError):
                logger.error(f"Build stream error: {e}", exc_info=True)
            await ws.send_json({"type": "error", "error": str(e)})
            await ws.close()
            return ws

        try:
            async for event in events:
                if ws.closed:
                    break
                await ws.send_json(event.model_dump(exclude_none=True))
        except ConnectionResetError:
            logger.info(f"Build stream client for {recipe_name} went away")
        finally:
            await events.aclose()

        await ws.close()
        return ws

    async def _handle_stream_provision(self, request: web.Request) -> web.StreamResponse:
        """Provision a container, streaming state changes and build logs."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        msg = await ws.receive()
        if msg.type != WSMsgType.TEXT:
            await ws.close()
            return ws

        async def send_log(line: str):
            if not ws.closed:
                await ws.send_json({"type": "log", "line": line})

        async def send_state(state: ContainerState):
            if not ws.closed:
                await ws.send_json({"type": "state", "state": state.value})

        try:
            provision_request = ProvisioningRequest(**json.loads(msg.data))
            result = await self.pipeline.provision(provision_request, on_log=send_log, on_state=send_state)
            await ws.send_json({"type": "success", **result.model_dump(mode="json")})
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            await ws.send_json({"type": "error", "error": f"Invalid provisioning request: {e}", "kind": "InvalidRequest"})
        except BurrowError as e:
            if not ws.closed:
                await ws.send_json({"type": "error", "error": str(e), "kind": type(e).__name__})
        except ConnectionResetError:
            logger.info("Provision stream client went away")
        except Exception as e:
            logger.error(f"Provision stream error: {e}", exc_info=True)
            if not ws.closed:
                await ws.send_json({"type": "error", "error": str(e), "kind": type(e).__name__})

        await ws.close()
        return ws

    # -- Command Handlers (Delegated to ProvisioningPipeline/providers) --

    async def _handle_ping(self, args: Dict[str, Any]) -> Dict[str, Any]:
        engine = self.pipeline.provider_registry.engine
        return {"agent": True, "engine": await engine.ping()}

    async def _handle_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        containers = await self.pipeline.list_containers()
        return {"containers": [c.model_dump(mode="json") for c in containers]}

    async def _handle_inspect(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_id = _require(args, "id", "Container id")
        container = await self.pipeline.get_container(container_id)
        return {"container": container.model_dump(mode="json")}

    async def _handle_provision(self, args: Dict[str, Any]) -> Dict[str, Any]:
        request = ProvisioningRequest(**args)
        result = await self.pipeline.provision(request)
        return result.model_dump(mode="json")

    async def _handle_start(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_id = _require(args, "id", "Container id")
        await self.pipeline.start_container(container_id)
        return {"container": container_id, "started": True}

    async def _handle_stop(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_id = _require(args, "id", "Container id")
        await self.pipeline.stop_container(container_id)
        return {"container": container_id, "stopped": True}

    async def _handle_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_id = _require(args, "id", "Container id")
        removed = await self.pipeline.remove_and_cleanup_keys(container_id)
        return {"container": removed.name, "removed": True}

    async def _handle_ssh_key(self, args: Dict[str, Any]) -> Dict[str, Any]:
        container_id = _require(args, "id", "Container id")
        material = await self.pipeline.get_private_key_material(container_id)
        return {"container": container_id, "private_key": material.decode()}

    async def _handle_image_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        images = await self._provider("image").list()
        return {"images": [i.model_dump() for i in images]}

    async def _handle_image_pull(self, args: Dict[str, Any]) -> Dict[str, Any]:
        reference = _require(args, "image", "Image reference")
        await self._provider("image").pull(reference)
        return {"image": reference, "pulled": True}

    async def _handle_image_build(self, args: Dict[str, Any]) -> Dict[str, Any]:
        tag = _require(args, "tag", "Image tag")
        recipe = _require(args, "dockerfile", "Recipe text")
        logs = []
        result = await self.pipeline.build_image(recipe, tag, on_log=logs.append)
        return {"tag": result.tag, "success": result.success, "error": result.error, "logs": logs}

    async def _handle_volume_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        volumes = await self._provider("volume").list()
        return {"volumes": [v.model_dump() for v in volumes]}

    async def _handle_volume_create(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Volume name")
        await self._provider("volume").create(name)
        return {"volume": name, "created": True}

    async def _handle_volume_remove(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Volume name")
        await self._provider("volume").remove(name)
        return {"volume": name, "removed": True}

    async def _handle_volume_files(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Volume name")
        return {"volume": name, "files": await self._provider("volume").files(name)}

    async def _handle_recipe_list(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"recipes": await self.pipeline.recipe_store.list()}

    async def _handle_recipe_get(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Recipe name")
        return {"name": name, "dockerfile": await self.pipeline.recipe_store.load(name)}

    async def _handle_recipe_save(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Recipe name")
        await self.pipeline.recipe_store.save(name, args.get("dockerfile") or "")
        return {"name": name, "saved": True}

    async def _handle_recipe_delete(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = _require(args, "name", "Recipe name")
        await self.pipeline.recipe_store.delete(name)
        return {"name": name, "deleted": True}
