"""Build provider: image builds with live progress streaming."""

import asyncio
import inspect
import logging
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

import docker.errors

from burrow.models.image import BuildEvent, ImageBuildResult
from burrow.providers.base import BaseProvider, ProviderStatus


logger = logging.getLogger(__name__)

LogSink = Callable[[str], Union[None, Awaitable[None]]]

_CHUNK = "chunk"
_BROKEN = "broken"
_DONE = "done"


def _chunk_error(chunk: Dict[str, Any]) -> Optional[str]:
    """Error message carried by a progress item, if any."""
    if chunk.get("error"):
        return str(chunk["error"]).strip()
    detail = chunk.get("errorDetail")
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"]).strip()
    return None


def _chunk_lines(chunk: Dict[str, Any]) -> List[str]:
    """Printable log lines of a progress item, in order."""
    if "stream" in chunk:
        return [line for line in str(chunk["stream"]).splitlines() if line.strip()]
    if "status" in chunk:
        status = str(chunk["status"]).strip()
        if chunk.get("id"):
            status = f"{chunk['id']}: {status}"
        return [status] if status else []
    return []


class BuildProvider(BaseProvider):
    """Submits recipes to the engine's image builder."""

    async def status(self, tag: str) -> ProviderStatus:
        """Check if a built image exists."""
        try:
            await self.engine.inspect_image(tag)
            return ProviderStatus.PRESENT
        except docker.errors.ImageNotFound:
            return ProviderStatus.ABSENT

    async def stream_build(self, recipe: str, tag: str) -> AsyncIterator[BuildEvent]:
        """Build ``recipe`` as ``tag`` and yield progress as it arrives.

        The engine's progress stream is read on a worker thread and handed
        over through a queue, so events keep the engine's order. The last
        event is always exactly one ``success`` or ``error``. Closing the
        iterator early stops following progress; the engine may still finish
        the build on its own.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()

        def emit(item):
            try:
                loop.call_soon_threadsafe(queue.put_nowait, item)
            except RuntimeError:
                # Event loop already closed; nobody is listening.
                pass

        def follow():
            stream = None
            try:
                stream = self.engine.build_stream(recipe, tag)
                for chunk in stream:
                    if stop.is_set():
                        break
                    emit((_CHUNK, chunk))
            except Exception as e:
                emit((_BROKEN, e))
            finally:
                emit((_DONE, None))
                close = getattr(stream, "close", None)
                if close is not None:
                    try:
                        close()
                    except Exception as e:
                        logger.debug(f"Error closing build stream for {tag}: {e}")

        logger.info(f"Building image {tag}")
        loop.run_in_executor(None, follow)

        try:
            while True:
                kind, payload = await queue.get()

                if kind == _CHUNK:
                    error = _chunk_error(payload)
                    if error:
                        logger.error(f"Build of {tag} failed: {error}")
                        yield BuildEvent.failed(error)
                        return
                    for line in _chunk_lines(payload):
                        logger.debug(f"[build {tag}] {line}")
                        yield BuildEvent.log(line)

                elif kind == _BROKEN:
                    logger.error(f"Build stream for {tag} broke: {payload}")
                    yield BuildEvent.failed(f"Build stream error: {payload}")
                    return

                else:
                    logger.info(f"Image {tag} built successfully")
                    yield BuildEvent.succeeded(tag)
                    return
        finally:
            stop.set()

    async def build(self, recipe: str, tag: str, on_log: Optional[LogSink] = None) -> ImageBuildResult:
        """Build an image, forwarding each log line to ``on_log``."""
        stream = self.stream_build(recipe, tag)
        try:
            async for event in stream:
                if event.type == "log":
                    if on_log is not None:
                        result = on_log(event.line)
                        if inspect.isawaitable(result):
                            await result
                elif event.type == "success":
                    return ImageBuildResult(tag=event.tag)
                else:
                    return ImageBuildResult(error=event.error)
        finally:
            await stream.aclose()

        return ImageBuildResult(error="Build stream ended without a result")
