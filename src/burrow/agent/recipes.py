"""File-backed storage for saved build recipes."""

import asyncio
import logging
import re
from pathlib import Path
from typing import List

from burrow.errors import InvalidRequest, RecipeNotFound
from burrow.models.container import NAME_PATTERN


logger = logging.getLogger(__name__)

SUFFIX = ".dockerfile"


class RecipeStore:
    """Saved recipes, one ``<name>.dockerfile`` per name."""

    def __init__(self, recipes_dir: Path):
        self.recipes_dir = Path(recipes_dir)

    def _path(self, name: str) -> Path:
        if not re.match(NAME_PATTERN, name or ""):
            raise InvalidRequest(f"Invalid recipe name: {name!r}")
        return self.recipes_dir / f"{name}{SUFFIX}"

    async def list(self) -> List[str]:
        """Names of saved recipes, sorted."""
        def _scan():
            if not self.recipes_dir.exists():
                return []
            return sorted(p.name[: -len(SUFFIX)] for p in self.recipes_dir.glob(f"*{SUFFIX}"))

        return await asyncio.to_thread(_scan)

    async def load(self, name: str) -> str:
        path = self._path(name)
        try:
            return await asyncio.to_thread(path.read_text)
        except FileNotFoundError as e:
            raise RecipeNotFound(f"Recipe {name} not found") from e

    async def save(self, name: str, content: str) -> None:
        if not content or not content.strip():
            raise InvalidRequest("Recipe content must not be empty")
        path = self._path(name)
        await asyncio.to_thread(lambda: self.recipes_dir.mkdir(parents=True, exist_ok=True))
        await asyncio.to_thread(path.write_text, content)
        logger.info(f"Saved recipe {name}")

    async def delete(self, name: str) -> None:
        path = self._path(name)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as e:
            raise RecipeNotFound(f"Recipe {name} not found") from e
        logger.info(f"Deleted recipe {name}")
