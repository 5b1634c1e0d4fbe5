"""HTTP/WebSocket client for communicating with agent."""

import json
import urllib.parse
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Optional

import httpx
import websockets
from websockets.exceptions import WebSocketException


DEFAULT_SOCKET = "./state/burrow-agent.sock"


class IPCError(Exception):
    """Communication or agent-side error.

    ``kind`` is the agent's error class name when the agent reported one.
    """

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class IPCClient:
    """Client for communicating with agent via Unix socket or TCP."""

    def __init__(self, socket_path: Optional[str] = None, host: Optional[str] = None):
        """Initialize IPC client."""
        self.socket_path = Path(socket_path) if socket_path else None
        self.host = host

        if not self.socket_path and not self.host:
            self.socket_path = Path(DEFAULT_SOCKET)

        if self.host:
            self.base_url = f"http://{self.host}"
            self.ws_base_url = f"ws://{self.host}"
            self.transport = None
        else:
            self.base_url = "http://localhost"
            self.ws_base_url = "ws://localhost"
            self.transport = httpx.HTTPTransport(uds=str(self.socket_path))

    def request(
        self,
        command: str,
        args: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = 10.0,
    ) -> Dict[str, Any]:
        """Send REST request to agent."""
        if self.socket_path and not self.socket_path.exists() and not self.host:
            raise IPCError(f"Agent socket not found at {self.socket_path}")

        payload = {
            "command": command,
            "args": args or {},
        }

        try:
            with httpx.Client(transport=self.transport, base_url=self.base_url, timeout=timeout) as client:
                response = client.post("/api/v1/command", json=payload)
                data = response.json()
        except httpx.RequestError as e:
            raise IPCError(f"Connection error: {e}") from e
        except json.JSONDecodeError as e:
            raise IPCError(f"HTTP error {response.status_code}: {response.text}") from e

        if not data.get("success"):
            raise IPCError(f"Agent error: {data.get('error')}", kind=data.get("kind"))

        return data.get("data", {})

    def stream_connect(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> AsyncContextManager:
        """Connect to WebSocket endpoint and return async connection context manager."""
        query = urllib.parse.urlencode({k: v for k, v in (params or {}).items() if v is not None})
        url = f"{self.ws_base_url}{endpoint}" + (f"?{query}" if query else "")

        if self.socket_path:
            return websockets.unix_connect(str(self.socket_path), uri=url)
        return websockets.connect(url)

    async def stream_events(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield JSON frames from a stream until its terminal frame."""
        try:
            async with self.stream_connect(endpoint, params) as ws:
                if payload is not None:
                    await ws.send(json.dumps(payload))
                async for message in ws:
                    event = json.loads(message)
                    yield event
                    if event.get("type") in ("success", "error"):
                        return
        except (OSError, WebSocketException) as e:
            raise IPCError(f"Stream error: {e}") from e
        raise IPCError("Stream closed before completion")
