"""Configuration management for the agent."""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from burrow.models.config import BurrowConfig


logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"


class ConfigManager:
    """Loads ``config.yaml`` and notices when it changes."""

    def __init__(self, config_dir: Path):
        """Initialize configuration manager."""
        self.config_dir = Path(config_dir)
        self.yaml = YAML(typ="safe")
        self.config: BurrowConfig = BurrowConfig()
        self._config_hash: Optional[str] = None

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE

    async def load(self) -> BurrowConfig:
        """Load the main configuration file.

        A missing file yields the defaults. An invalid file raises
        ``ValidationError`` and leaves the previous configuration in place.
        """
        config_file = self.config_file
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_file}, using defaults")
            self.config = BurrowConfig()
            self._config_hash = None
            return self.config

        content = await asyncio.to_thread(config_file.read_text)
        data = self._parse(content)
        try:
            self.config = BurrowConfig(**data)
        except ValidationError as e:
            logger.error(f"Invalid config {config_file}: {e}")
            raise

        self._config_hash = self._hash(content)
        logger.info(f"Loaded configuration from {config_file}")
        return self.config

    def _parse(self, content: str) -> Dict[str, Any]:
        data = self.yaml.load(content)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_file} must contain a mapping")
        return data

    @staticmethod
    def _hash(content: str) -> str:
        return hashlib.md5(content.encode()).hexdigest()

    async def has_changed(self) -> bool:
        """Whether the config file differs from what was last loaded."""
        config_file = self.config_file
        if not config_file.exists():
            return self._config_hash is not None

        content = await asyncio.to_thread(config_file.read_text)
        return self._hash(content) != self._config_hash
