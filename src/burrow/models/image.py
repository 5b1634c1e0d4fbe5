"""Image, volume and build models."""

from typing import Literal, List, Optional
from pydantic import BaseModel, Field


class ImageInfo(BaseModel):
    """Image listed by the engine."""
    id: str
    repo_tags: List[str] = Field(default_factory=list)
    size: int = 0
    created: str = ""


class VolumeInfo(BaseModel):
    """Managed volume listed by the engine."""
    name: str
    driver: str = "local"
    mountpoint: str = ""
    created_at: str = ""


class BuildEvent(BaseModel):
    """One item of a build progress stream.

    A stream carries any number of ``log`` events followed by exactly one
    terminal event, ``success`` or ``error``.
    """
    type: Literal["log", "success", "error"]
    line: Optional[str] = None
    tag: Optional[str] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.type != "log"

    @classmethod
    def log(cls, line: str) -> "BuildEvent":
        return cls(type="log", line=line)

    @classmethod
    def succeeded(cls, tag: str) -> "BuildEvent":
        return cls(type="success", tag=tag)

    @classmethod
    def failed(cls, error: str) -> "BuildEvent":
        return cls(type="error", error=error)


class ImageBuildResult(BaseModel):
    """Resolved outcome of an image build."""
    tag: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.tag is not None
