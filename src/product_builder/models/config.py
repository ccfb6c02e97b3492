"""Models for the product manifest and the run configuration.

The manifest (phovea_product.json) maps a part key to a part entry:

    {
      "ordino": {
        "type": "web",
        "repo": "Caleydo/ordino",
        "branch": "develop",
        "additionals": {
          "tdp_core": {"repo": "datavisyn/tdp_core"}
        }
      },
      "api": {
        "type": "api",
        "repo": "phovea/phovea_server",
        "data": ["https://example.com/data.zip"]
      }
    }

Entries are parsed into immutable PartSpec objects. The resolved runtime
record lives in models/part.py.
"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, RootModel, field_validator, model_validator

from product_builder.services.repo_resolver import repo_name


class PartType(str, Enum):
    """Allowed part types."""

    STATIC = "static"
    WEB = "web"
    API = "api"
    SERVICE = "service"


WEB_TYPES = {PartType.STATIC, PartType.WEB}
SERVER_TYPES = {PartType.API, PartType.SERVICE}


class DataSource(BaseModel):
    """A data package shipped with a part.

    A bare string in the manifest is a url source:
        "data": ["https://example.com/a.zip", {"type": "repo", "repo": "org/data"}]
    """

    type: Literal["url", "repo"] = "url"
    url: str | None = None
    repo: str | None = None
    branch: str = "master"
    name: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value):
        if isinstance(value, str):
            return {"type": "url", "url": value}
        return value

    @model_validator(mode="after")
    def _check_required(self):
        if self.type == "url" and not self.url:
            raise ValueError("url data source requires 'url'")
        if self.type == "repo" and not self.repo:
            raise ValueError("repo data source requires 'repo'")
        return self


class AdditionalSpec(BaseModel):
    """A nested repository bundled into a composite part."""

    repo: str
    branch: str | None = None
    repo_name: str | None = Field(default=None, alias="repoName")
    repo_url: str | None = Field(default=None, alias="repoUrl")

    model_config = {"populate_by_name": True, "frozen": True}


class PartSpec(BaseModel):
    """One manifest entry, as parsed."""

    type: PartType
    repo: str
    branch: str | None = None
    data: list[DataSource] = Field(default_factory=list)
    additionals: dict[str, AdditionalSpec] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("additionals", "additional"),
    )
    docker_tags: list[str] = Field(default_factory=list, alias="dockerTags")
    image: str | None = None
    version: str | None = None
    repo_name: str | None = Field(default=None, alias="repoName")
    repo_url: str | None = Field(default=None, alias="repoUrl")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("additionals", mode="before")
    @classmethod
    def _additionals_from_list(cls, value):
        # legacy form: "additional": [{"name": "tdp_core", "repo": "..."}]
        if isinstance(value, list):
            result = {}
            for item in value:
                if not isinstance(item, dict):
                    return value
                key = item.get("name") or (repo_name(item["repo"]) if item.get("repo") else "")
                result[key or str(len(result))] = item
            return result
        return value


class ProductManifest(RootModel[dict[str, PartSpec]]):
    """Part key → PartSpec, in manifest order."""

    def keys(self) -> list[str]:
        return list(self.root)

    def __getitem__(self, key: str) -> PartSpec:
        return self.root[key]

    def __len__(self) -> int:
        return len(self.root)


_PROXY_VARIABLES = ("http_proxy", "https_proxy", "no_proxy")


class BuildParams(BaseModel):
    """Immutable configuration of one product build run.

    Created once by the CLI and handed to every component. env is a
    snapshot of the process environment; it is passed to every subprocess
    and used for credential and proxy lookups.
    """

    product_name: str
    version: str
    root: Path = Path(".")
    work_dir: Path = Path(".")
    output_dir: Path = Path("build")
    services: tuple[str, ...] | None = None
    skip_tests: bool = False
    skip_docker: bool = False
    skip_push: bool = False
    save_image: bool = False
    remove_images: bool = False
    inject_version: bool = False
    use_ssh: bool = False
    no_default_tags: bool = False
    quiet: bool = False
    serial: bool = False
    docker_registry: str | None = None
    docker_tags: tuple[str, ...] = ()
    docker_build_args: tuple[str, ...] = ()
    timeout: float | None = None
    env: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def create(cls, environ: dict[str, str], **kwargs) -> "BuildParams":
        """Snapshot environ and build the params.

        PHOVEA_SKIP_TESTS is set in the snapshot when tests are skipped so
        that the invoked build commands can pick it up.
        """
        env = dict(environ)
        if kwargs.get("skip_tests"):
            env["PHOVEA_SKIP_TESTS"] = "true"
        return cls(env=env, **kwargs)

    def proxy_variables(self) -> dict[str, str]:
        """Proxy variables from the env snapshot, names matched case-insensitively."""
        return {
            name: value
            for name, value in self.env.items()
            if name.lower() in _PROXY_VARIABLES
        }
