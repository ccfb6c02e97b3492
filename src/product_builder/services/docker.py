"""Docker image builder: build, tag, push and save part images via the
docker CLI."""

import asyncio
import gzip
import re
import shutil
from pathlib import Path

from product_builder.errors import MissingDockerfileError, SubprocessError
from product_builder.models.config import BuildParams
from product_builder.models.part import Part
from product_builder.services.process import CommandRunner


def dockerfile_path(part: Part) -> Path:
    """deploy/<type>/Dockerfile, relative to the part's workspace."""
    return Path("deploy") / part.type.value / "Dockerfile"


def build_args(params: BuildParams) -> list[str]:
    """--build-arg flags: proxy variables first, then --dockerBuildArgs."""
    args: list[str] = []
    for name, value in params.proxy_variables().items():
        args += ["--build-arg", f"{name}={value}"]
    for entry in params.docker_build_args:
        for arg in re.split(r"[,\s]+", entry.strip()):
            if arg:
                args += ["--build-arg", arg]
    return args


class DockerImageBuilder:
    def __init__(self, params: BuildParams, runner: CommandRunner):
        self.params = params
        self.runner = runner

    async def build(self, part: Part, context: Path | None = None) -> str:
        """Build the part image in its workspace; returns the image name."""
        context = context or part.tmp_dir
        dockerfile = dockerfile_path(part)
        if not (context / dockerfile).is_file():
            raise MissingDockerfileError(f"{context / dockerfile} not found")

        cmd = ["docker", "build", "-t", part.image, "-f", dockerfile.as_posix(), *build_args(self.params), "."]
        await self.runner.run(cmd, context, part)
        return part.image

    async def tag(self, part: Part, tags: list[str] | None = None) -> None:
        for tag in part.docker_tags if tags is None else tags:
            if tag == part.image:
                continue
            await self.runner.run(["docker", "tag", part.image, tag], self.params.root, part)

    async def push(self, part: Part) -> None:
        for tag in part.docker_tags:
            await self.runner.run(["docker", "push", tag], self.params.root, part)

    async def save(self, part: Part, target: Path) -> None:
        """docker save the part image into the gzipped archive target (.tar.gz)."""
        target.parent.mkdir(parents=True, exist_ok=True)
        archive = target.with_suffix("")
        await self.runner.run(["docker", "save", "-o", str(archive), part.image], self.params.root, part)
        await asyncio.to_thread(_gzip, archive, target)

    async def remove_images(self, product_name: str) -> list[str]:
        """Remove the local images of earlier builds of the product.

        An image belongs to the product when the product name is one of the
        path segments of its repository (ordino:1.0, reg.io/ordino/api:1.0).
        A failing docker rmi is reported and ignored.
        """
        listing = await self.runner.run(
            ["docker", "images", "--format", "{{.Repository}}:{{.Tag}}"], self.params.root, capture=True
        )
        images = [
            line for line in (listing or "").splitlines()
            if "<none>" not in line and product_name in line.rsplit(":", 1)[0].split("/")
        ]
        if not images:
            return []
        try:
            await self.runner.run(["docker", "rmi", *images], self.params.root)
        except SubprocessError as e:
            self.runner.reporter.warning(f"removing old images failed, continuing: {e}")
        return images


def _gzip(source: Path, target: Path) -> None:
    with open(source, "rb") as src, gzip.open(target, "wb") as dst:
        shutil.copyfileobj(src, dst)
    source.unlink()
