"""Stage runner.

Each part goes through

    created → prepared → installed → built → dockerized → pushed

and stops at the first failing stage. A failure is recorded on the part
and in its PartResult; it never reaches the pipelines of other parts.
"""

import asyncio

from product_builder.errors import BuildError
from product_builder.models.config import BuildParams
from product_builder.models.part import Part, PartResult, Stage
from product_builder.services import part_build, workspace
from product_builder.services.data_fetcher import fetch_data
from product_builder.services.docker import DockerImageBuilder
from product_builder.services.process import CommandRunner
from product_builder.services.reporter import Reporter


class PartPipeline:
    def __init__(self, part: Part, params: BuildParams, runner: CommandRunner, reporter: Reporter):
        self.part = part
        self.params = params
        self.runner = runner
        self.reporter = reporter
        self.docker = DockerImageBuilder(params, runner)

    def stages(self):
        """(target stage, coroutine function) in execution order."""
        return [
            (Stage.PREPARED, self.prepare),
            (Stage.INSTALLED, self.install),
            (Stage.BUILT, self.build),
            (Stage.DOCKERIZED, self.dockerize),
            (Stage.PUSHED, self.push),
        ]

    async def run(self) -> PartResult:
        part = self.part
        for target, stage in self.stages():
            try:
                await stage()
            except Exception as e:
                return self._fail(target, stage.__name__, e)
            part.stage = target
        self.reporter.info(f"{part.key} done", part, fg="green")
        return PartResult(key=part.key, success=True, stage=part.stage)

    async def prepare(self):
        await workspace.prepare(self.part, self.params, self.runner)

    async def install(self):
        await part_build.install(self.part, self.params, self.runner, self.reporter)

    async def build(self):
        await part_build.build(self.part, self.params, self.runner, self.reporter)

    async def dockerize(self):
        if self.params.skip_docker:
            return
        await fetch_data(self.part, part_build.source_dir(self.part) / "_data", self.runner)
        await self.docker.build(self.part)
        await self.docker.tag(self.part)
        if self.params.save_image:
            await self.docker.save(self.part, self.params.output_dir / f"{self.part.key}_image.tar.gz")

    async def push(self):
        if self.params.skip_docker or self.params.skip_push:
            return
        await self.docker.push(self.part)

    def _fail(self, target: Stage, name: str, e: Exception) -> PartResult:
        part = self.part
        part.failed_stage = target
        part.error = str(e) or type(e).__name__
        part.stage = Stage.FAILED
        if isinstance(e, BuildError):
            self.reporter.error(f"ERROR building {part.key} ({name}): {e}", part)
        else:
            self.reporter.error(f"ERROR building {part.key} ({name}): {type(e).__name__}: {e}", part)
        return PartResult(
            key=part.key,
            success=False,
            stage=Stage.FAILED,
            failed_stage=target,
            error_kind=type(e).__name__,
            message=part.error,
        )


async def run_parts(
    parts: list[Part],
    params: BuildParams,
    runner: CommandRunner,
    reporter: Reporter,
) -> list[PartResult]:
    """Run the pipelines of all parts, concurrently unless params.serial."""
    pipelines = [PartPipeline(p, params, runner, reporter) for p in parts]
    if params.serial:
        return [await pipeline.run() for pipeline in pipelines]
    return list(await asyncio.gather(*(pipeline.run() for pipeline in pipelines)))
