"""SSH key store: one keypair per container name."""

import asyncio
import logging
import os
import subprocess
from pathlib import Path

from burrow.errors import KeyGenerationFailed, KeyNotFound
from burrow.models.keys import SshKeyPair
from burrow.utils.process import run_command


logger = logging.getLogger(__name__)

KEYGEN_TIMEOUT = 120


class KeyManager:
    """Generates, reads and deletes per-container SSH keys.

    Private keys live at ``<store_dir>/<name>.pem``. Generating a key for a
    name destroys any key previously stored for it.
    """

    def __init__(self, store_dir: Path, key_bits: int = 4096):
        self.store_dir = Path(store_dir)
        self.key_bits = max(key_bits, 4096)

    def private_key_path(self, name: str) -> Path:
        """Path of the private key for ``name`` (may not exist)."""
        return self.store_dir / f"{name}.pem"

    def _public_key_path(self, name: str) -> Path:
        return self.store_dir / f"{name}.pem.pub"

    async def _ensure_store(self):
        await asyncio.to_thread(lambda: self.store_dir.mkdir(mode=0o700, parents=True, exist_ok=True))

    async def _unlink(self, path: Path):
        await asyncio.to_thread(lambda: path.unlink(missing_ok=True))

    async def generate(self, name: str) -> SshKeyPair:
        """Create a fresh RSA keypair for ``name``."""
        await self._ensure_store()

        private_path = self.private_key_path(name)
        public_path = self._public_key_path(name)

        # ssh-keygen refuses to overwrite without prompting
        await self._unlink(private_path)
        await self._unlink(public_path)

        cmd = [
            "ssh-keygen",
            "-t", "rsa",
            "-b", str(self.key_bits),
            "-N", "",
            "-C", f"burrow-{name}",
            "-f", str(private_path),
            "-q",
        ]

        logger.info(f"Generating {self.key_bits}-bit SSH key for {name}")
        try:
            await run_command(cmd, timeout=KEYGEN_TIMEOUT)
        except FileNotFoundError as e:
            raise KeyGenerationFailed("ssh-keygen is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise KeyGenerationFailed(f"ssh-keygen timed out after {KEYGEN_TIMEOUT}s") from e
        except subprocess.CalledProcessError as e:
            raise KeyGenerationFailed(f"ssh-keygen exited with {e.returncode}: {(e.stderr or '').strip()}") from e

        try:
            public_key = (await asyncio.to_thread(public_path.read_text)).strip()
        except FileNotFoundError as e:
            raise KeyGenerationFailed(f"ssh-keygen produced no public key for {name}") from e
        finally:
            await self._unlink(public_path)

        await asyncio.to_thread(os.chmod, private_path, 0o600)
        logger.debug(f"Stored private key for {name} at {private_path}")

        return SshKeyPair(name=name, public_key=public_key, private_key_path=private_path)

    async def read(self, name: str) -> str:
        """Private key text for ``name``."""
        path = self.private_key_path(name)
        try:
            return await asyncio.to_thread(path.read_text)
        except FileNotFoundError as e:
            raise KeyNotFound(f"No SSH key stored for {name}") from e

    async def cleanup(self, name: str) -> None:
        """Delete the key for ``name``; absent keys are fine."""
        await self._unlink(self.private_key_path(name))
        await self._unlink(self._public_key_path(name))
        logger.debug(f"Removed SSH key for {name}")
