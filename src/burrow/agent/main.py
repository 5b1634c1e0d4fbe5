"""Main agent implementation."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from watchfiles import awatch

from burrow.agent.config import ConfigManager
from burrow.agent.keys import KeyManager
from burrow.agent.pipeline import ProvisioningPipeline
from burrow.agent.ports import PortAllocator
from burrow.agent.recipes import RecipeStore
from burrow.agent.server import AgentServer
from burrow.providers import ProviderRegistry
from burrow.utils.engine import EngineClient
from burrow.utils.logging import setup_logging


logger = logging.getLogger(__name__)


class BurrowAgent:
    """Main agent wiring the engine, pipeline and server together."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the agent."""
        self.config_dir = config_dir or Path("./configs")
        self.config_manager: Optional[ConfigManager] = None
        self.engine: Optional[EngineClient] = None
        self.registry: Optional[ProviderRegistry] = None
        self.pipeline: Optional[ProvisioningPipeline] = None
        self.server: Optional[AgentServer] = None
        self.shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    async def initialize(self):
        """Initialize agent components."""
        self.config_manager = ConfigManager(self.config_dir)
        config = await self.config_manager.load()
        setup_logging(config.agent.log_level)

        state_dir = Path(config.agent.state_dir)
        state_dir.mkdir(parents=True, exist_ok=True)

        self.engine = EngineClient(
            base_url=config.engine.base_url,
            timeout=config.engine.timeout,
            label=config.engine.label,
        )
        await self.engine.connect()

        self.registry = ProviderRegistry(self.engine)
        await self.registry.initialize(config)

        self.pipeline = ProvisioningPipeline(
            config=config,
            provider_registry=self.registry,
            key_manager=KeyManager(config.key_store_dir, key_bits=config.keys.key_bits),
            port_allocator=PortAllocator(
                self.engine,
                start=config.ports.ssh_port_start,
                count=config.ports.ssh_port_count,
                lease_ttl=config.ports.lease_ttl,
            ),
            recipe_store=RecipeStore(config.recipes_dir),
        )

        socket_path = Path(config.agent.socket_path)
        if not socket_path.is_absolute():
            socket_path = state_dir / socket_path.name

        self.server = AgentServer(
            socket_path=socket_path,
            host=config.agent.host,
            port=config.agent.port,
            pipeline=self.pipeline,
        )

        logger.info("Agent initialized successfully")

    async def run(self):
        """Run the agent main loop."""
        await self.initialize()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.shutdown)

        try:
            await self.server.start()

            config_task = asyncio.create_task(self._config_watch_loop())
            self._tasks.append(config_task)

            logger.info("Agent started, waiting for shutdown signal")
            await self.shutdown_event.wait()

        finally:
            await self._cleanup()

    async def reload(self):
        """Reload configuration and push it into running components.

        Only settings that can change without restarting take effect: log
        level, key display directory, SSH user, naming and restart policy.
        Socket, engine connection, port range and storage paths need a restart.
        """
        if not await self.config_manager.has_changed():
            logger.debug("Configuration unchanged, skipping reload")
            return

        config = await self.config_manager.load()
        setup_logging(config.agent.log_level)
        await self.registry.reconfigure(config)
        self.pipeline.config = config
        logger.info("Configuration reloaded")

    async def _config_watch_loop(self):
        """Watch for configuration changes."""
        logger.info(f"Starting config watcher on {self.config_dir}")
        try:
            async for _ in awatch(self.config_dir, stop_event=self.shutdown_event):
                try:
                    await self.reload()
                except Exception as e:
                    logger.error(f"Failed to reload configuration: {e}")
        except FileNotFoundError:
            logger.warning(f"Config directory {self.config_dir} does not exist, not watching")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()

    async def _cleanup(self):
        """Clean up resources."""
        logger.info("Cleaning up agent resources")

        for task in self._tasks:
            if not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.server:
            await self.server.stop()

        if self.engine:
            await self.engine.close()

        logger.info("Agent cleanup completed")


async def run_agent():
    """Run the agent."""
    config_dir = os.environ.get("BURROW_CONFIG_DIR")
    agent = BurrowAgent(config_dir=Path(config_dir) if config_dir else None)
    await agent.run()
