"""Host port allocation for container SSH endpoints."""

import asyncio
import logging
import socket
import time
from dataclasses import dataclass
from typing import Dict, Optional, Set

import docker.errors

from burrow.errors import EngineError, PortExhausted
from burrow.utils.engine import EngineClient


logger = logging.getLogger(__name__)

CHECK_HOST = "127.0.0.1"


def is_port_available(port: int, host: str = CHECK_HOST) -> bool:
    """Whether a listening socket can bind ``host:port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
            sock.listen(1)
        except OSError:
            return False
    return True


def find_available_port(start: int, max_attempts: int = 100, host: str = CHECK_HOST) -> int:
    """First bindable port in ``[start, start + max_attempts)``."""
    for port in range(start, start + max_attempts):
        if is_port_available(port, host):
            return port
    raise PortExhausted(f"No available port found between {start} and {start + max_attempts - 1}")


@dataclass
class PortLease:
    """Advisory in-process claim on a port for one provisioning attempt."""
    port: int
    owner: str
    expires_at: float

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.monotonic()) >= self.expires_at


class PortAllocator:
    """Finds SSH host ports free on the OS, on the engine and in-process.

    Allocation is check-then-use against the OS and engine. The lease table
    keeps concurrent attempts in this process from picking the same port
    until ``release`` is called or the lease expires; races with other
    processes still surface at container start as ``PortConflict``.
    """

    def __init__(
        self,
        engine: EngineClient,
        start: int = 2222,
        count: int = 100,
        lease_ttl: float = 600.0,
    ):
        self.engine = engine
        self.start = start
        self.count = count
        self.lease_ttl = lease_ttl
        self._leases: Dict[int, PortLease] = {}
        self._lock = asyncio.Lock()

    @property
    def candidate_range(self) -> range:
        return range(self.start, self.start + self.count)

    def leased_ports(self) -> Set[int]:
        """Ports under an unexpired lease."""
        now = time.monotonic()
        return {port for port, lease in self._leases.items() if not lease.expired(now)}

    def _prune(self):
        now = time.monotonic()
        for port in [p for p, lease in self._leases.items() if lease.expired(now)]:
            logger.debug(f"Lease on port {port} for {self._leases[port].owner} expired")
            del self._leases[port]

    async def allocate_ssh_port(self, owner: str = "") -> int:
        """Lease the lowest free SSH port in the configured range."""
        async with self._lock:
            try:
                occupied = await self.engine.published_ports()
            except docker.errors.APIError as e:
                raise EngineError(f"Cannot list published ports: {e}") from e
            self._prune()

            for port in self.candidate_range:
                if port in occupied or port in self._leases:
                    continue
                if not await asyncio.to_thread(is_port_available, port):
                    continue

                self._leases[port] = PortLease(
                    port=port,
                    owner=owner,
                    expires_at=time.monotonic() + self.lease_ttl,
                )
                logger.info(f"Leased SSH port {port} to {owner or 'anonymous'}")
                return port

        raise PortExhausted(
            f"No available SSH port between {self.start} and {self.start + self.count - 1}"
        )

    def release(self, port: int) -> None:
        """Drop the lease on ``port``, if any."""
        lease = self._leases.pop(port, None)
        if lease:
            logger.debug(f"Released SSH port {port} from {lease.owner or 'anonymous'}")
