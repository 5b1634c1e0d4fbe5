"""SSH key models."""

from pathlib import Path
from pydantic import BaseModel, Field


class SshKeyPair(BaseModel):
    """Keypair generated for one container name."""
    name: str = Field(..., description="Owning container name")
    public_key: str = Field(..., description="OpenSSH public key line")
    private_key_path: Path = Field(..., description="Private key file in the key store")
