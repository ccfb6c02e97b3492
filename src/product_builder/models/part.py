"""Runtime records of a product build.

Part is derived from a PartSpec by services/part_builder.py and then
enriched while its pipeline runs (plugin type after cloning, stage, error).
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from product_builder.models.config import SERVER_TYPES, WEB_TYPES, DataSource, PartType


class Stage(str, Enum):
    """Pipeline state of a part. Transitions only move forward."""

    CREATED = "created"
    PREPARED = "prepared"
    INSTALLED = "installed"
    BUILT = "built"
    DOCKERIZED = "dockerized"
    PUSHED = "pushed"
    FAILED = "failed"


class AdditionalRepo(BaseModel):
    """A resolved additional repository of a composite part."""

    key: str
    repo: str
    branch: str = "master"
    repo_name: str
    repo_url: str
    plugin_type: str | None = None
    is_hybrid_type: bool = False


class Part(BaseModel):
    key: str
    type: PartType
    repo: str
    repo_name: str
    repo_url: str
    branch: str = "master"
    data: list[DataSource] = Field(default_factory=list)
    additionals: list[AdditionalRepo] = Field(default_factory=list)
    image: str
    version: str
    tmp_dir: Path
    color: str
    docker_tags: list[str] = Field(default_factory=list)
    plugin_type: str | None = None
    is_hybrid_type: bool = False
    stage: Stage = Stage.CREATED
    failed_stage: Stage | None = None
    error: str | None = None

    @property
    def is_web_type(self) -> bool:
        return self.type in WEB_TYPES

    @property
    def is_server_type(self) -> bool:
        return self.type in SERVER_TYPES

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def repos(self) -> list["Part | AdditionalRepo"]:
        """The main repository followed by every additional one."""
        return [self, *self.additionals]


class PartResult(BaseModel):
    """Outcome of one part's pipeline."""

    key: str
    success: bool
    stage: Stage
    failed_stage: Stage | None = None
    error_kind: str | None = None
    message: str | None = None
