"""Configuration models."""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentConfig(BaseModel):
    """Agent configuration."""
    socket_path: str = Field(default="./state/burrow-agent.sock")
    host: Optional[str] = None
    port: int = Field(default=8765, ge=1, le=65535)
    log_level: str = Field(default="INFO")
    state_dir: str = Field(default="./state")
    data_dir: str = Field(default="./data")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class KeysConfig(BaseModel):
    """SSH key store configuration."""
    store_dir: Optional[str] = None
    key_bits: int = Field(default=4096, ge=4096)
    display_dir: Optional[str] = Field(None, description="Directory shown in SSH commands")


class PortsConfig(BaseModel):
    """Host port allocation configuration."""
    ssh_port_start: int = Field(default=2222, ge=1, le=65535)
    ssh_port_count: int = Field(default=100, ge=1)
    lease_ttl: float = Field(default=600.0, gt=0)


class EngineConfig(BaseModel):
    """Container engine connection and naming."""
    base_url: Optional[str] = None
    timeout: int = Field(default=120, ge=1)
    label: str = Field(default="burrow.managed")
    image_prefix: str = Field(default="burrow-")
    restart_policy: str = Field(default="unless-stopped")
    ssh_user: str = Field(default="root")
    helper_image: str = Field(default="alpine:latest", description="Image for throwaway helper containers")


class RecipesConfig(BaseModel):
    """Saved recipe storage."""
    dir: Optional[str] = None


class BurrowConfig(BaseModel):
    """Main configuration model."""
    model_config = ConfigDict(extra="ignore")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)
    ports: PortsConfig = Field(default_factory=PortsConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    recipes: RecipesConfig = Field(default_factory=RecipesConfig)

    @property
    def key_store_dir(self) -> Path:
        """Resolved key store directory."""
        if self.keys.store_dir:
            return Path(self.keys.store_dir)
        return Path(self.agent.data_dir) / "ssh-keys"

    @property
    def recipes_dir(self) -> Path:
        """Resolved saved-recipe directory."""
        if self.recipes.dir:
            return Path(self.recipes.dir)
        return Path(self.agent.data_dir) / "recipes"
