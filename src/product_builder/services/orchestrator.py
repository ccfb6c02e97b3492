"""Whole-product build run: part pipelines, compose synthesis, summary."""

import asyncio
import shutil
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from product_builder.errors import MergeError
from product_builder.models.config import BuildParams
from product_builder.models.part import Part, PartResult
from product_builder.services.compose import collect_fragments, synthesize, write_compose
from product_builder.services.docker import DockerImageBuilder
from product_builder.services.pipeline import run_parts
from product_builder.services.process import CommandRunner
from product_builder.services.reporter import Reporter

COMPOSE_FILE = "docker-compose.yml"


@dataclass
class BuildReport:
    parts: list[Part]
    results: list[PartResult]
    compose: dict | None = None
    compose_file: Path | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and all(r.success for r in self.results)


def run_build(
    parts: list[Part],
    params: BuildParams,
    reporter: Reporter,
    runner: CommandRunner | None = None,
) -> BuildReport:
    """Build all parts, then write the compose file of the successful ones."""
    runner = runner or CommandRunner(params, reporter)
    _reset_output_dir(params.output_dir)

    with _product_yo_rc_moved_aside(params.root):
        results = asyncio.run(_run(parts, params, runner, reporter))

    report = BuildReport(parts=parts, results=results)
    built = [p for p in parts if p.succeeded]

    reporter.info("create docker-compose.yml")
    try:
        report.compose = synthesize(built, collect_fragments(built))
        report.compose_file = params.output_dir / COMPOSE_FILE
        write_compose(report.compose, report.compose_file)
    except MergeError as e:
        reporter.error(f"ERROR creating {COMPOSE_FILE}: {e}")
        report.errors.append(str(e))

    reporter.summary(parts)
    return report


async def _run(
    parts: list[Part],
    params: BuildParams,
    runner: CommandRunner,
    reporter: Reporter,
) -> list[PartResult]:
    if params.remove_images and not params.skip_docker:
        await DockerImageBuilder(params, runner).remove_images(params.product_name)
    return await run_parts(parts, params, runner, reporter)


def _reset_output_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


@contextmanager
def _product_yo_rc_moved_aside(root: Path):
    # the product's own .yo-rc.json would be picked up by the workspace generator
    yo_rc = root / ".yo-rc.json"
    moved = root / ".yo-rc_tmp.json"
    if not yo_rc.exists():
        yield
        return
    yo_rc.rename(moved)
    try:
        yield
    finally:
        moved.rename(yo_rc)
