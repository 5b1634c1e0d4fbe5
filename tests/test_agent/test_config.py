"""Tests for agent configuration management."""

import pytest
from pathlib import Path
from pydantic import ValidationError

from burrow.agent.config import ConfigManager


@pytest.fixture
def config_dir(tmp_path):
    """Create a temporary config directory with a main config."""
    (tmp_path / "config.yaml").write_text("""
agent:
  socket_path: ./agent.sock
  log_level: debug
  data_dir: /srv/burrow
ports:
  ssh_port_start: 3000
  ssh_port_count: 10
engine:
  image_prefix: dev-
""")
    return tmp_path


@pytest.mark.asyncio
class TestConfigManager:
    """Test ConfigManager async operations."""

    async def test_load_config(self, config_dir):
        manager = ConfigManager(config_dir)

        config = await manager.load()

        assert config is manager.config
        assert config.agent.socket_path == "./agent.sock"
        assert config.agent.log_level == "DEBUG"
        assert config.ports.ssh_port_start == 3000
        assert config.engine.image_prefix == "dev-"
        assert config.key_store_dir == Path("/srv/burrow/ssh-keys")
        assert config.recipes_dir == Path("/srv/burrow/recipes")

    async def test_missing_file_uses_defaults(self, tmp_path):
        manager = ConfigManager(tmp_path)

        config = await manager.load()

        assert config.ports.ssh_port_start == 2222
        assert config.ports.ssh_port_count == 100
        assert config.engine.image_prefix == "burrow-"

    async def test_empty_file_uses_defaults(self, tmp_path):
        (tmp_path / "config.yaml").write_text("")
        config = await ConfigManager(tmp_path).load()
        assert config.agent.port == 8765

    async def test_invalid_file_keeps_previous_config(self, config_dir):
        manager = ConfigManager(config_dir)
        await manager.load()

        (config_dir / "config.yaml").write_text("keys:\n  key_bits: 1024\n")
        with pytest.raises(ValidationError):
            await manager.load()

        assert manager.config.ports.ssh_port_start == 3000

    async def test_change_detection(self, config_dir):
        manager = ConfigManager(config_dir)
        await manager.load()
        assert await manager.has_changed() is False

        (config_dir / "config.yaml").write_text("agent:\n  log_level: WARNING\n")
        assert await manager.has_changed() is True

        await manager.load()
        assert await manager.has_changed() is False
