"""Install and build stages, split by part type.

Web parts (static, web) are built into a bundle archive with npm.
Server parts (api, service) install their python requirements and
collect the build/source trees of all their repositories.
"""

import asyncio
import shutil
from pathlib import Path

from product_builder.models.config import BuildParams
from product_builder.models.part import Part
from product_builder.services.process import CommandRunner, npm_executable
from product_builder.services.reporter import Reporter

REQUIREMENTS = "requirements.txt"
DEV_REQUIREMENTS = "requirements_dev.txt"


async def install(part: Part, params: BuildParams, runner: CommandRunner, reporter: Reporter) -> None:
    if part.is_web_type:
        await runner.run([npm_executable(), "install"], part.tmp_dir, part)
        return

    files = [REQUIREMENTS]
    if not params.skip_tests:
        files.append(DEV_REQUIREMENTS)
    for name in files:
        if not (part.tmp_dir / name).exists():
            reporter.info(f"{name} not found, skipping", part, fg="yellow")
            continue
        await runner.run(["pip", "install", "--no-cache-dir", "-r", name], part.tmp_dir, part)


async def build(part: Part, params: BuildParams, runner: CommandRunner, reporter: Reporter) -> None:
    if part.is_web_type:
        await build_web(part, params, runner, reporter)
    else:
        await build_server(part, params, runner, reporter)


async def build_web(part: Part, params: BuildParams, runner: CommandRunner, reporter: Reporter) -> None:
    reporter.info(f"building web application {part.key}", part)
    npm = npm_executable()
    if not params.skip_tests:
        for repo in part.additionals:
            script = f"test{':web' if repo.is_hybrid_type else ''}:{repo.repo_name}"
            await runner.run([npm, "run", script], part.tmp_dir, part)

    script = f"dist{':web' if part.is_hybrid_type else ''}:{part.repo_name}"
    await runner.run([npm, "run", script], part.tmp_dir, part)

    bundle = part.tmp_dir / part.repo_name / "dist" / f"{part.repo_name}.tar.gz"
    target = params.output_dir / f"{part.key}.tar.gz"
    await asyncio.to_thread(_copy_file, bundle, target)
    await asyncio.to_thread(shutil.rmtree, part.tmp_dir / "node_modules", True)


async def build_server(part: Part, params: BuildParams, runner: CommandRunner, reporter: Reporter) -> None:
    reporter.info(f"building service package {part.key}", part)
    npm = npm_executable()
    for repo in part.repos():
        script = f"build{':python' if repo.is_hybrid_type else ''}"
        await runner.run([npm, "run", script], part.tmp_dir / repo.repo_name, part)

    target = source_dir(part)
    for repo in part.repos():
        source = part.tmp_dir / repo.repo_name / "build" / "source"
        await asyncio.to_thread(shutil.copytree, source, target, dirs_exist_ok=True)

    deploy = part.tmp_dir / part.repo_name / "deploy"
    if deploy.is_dir():
        await asyncio.to_thread(shutil.copytree, deploy, part.tmp_dir / "deploy", dirs_exist_ok=True)


def source_dir(part: Part) -> Path:
    """Aggregated output tree of a part."""
    return part.tmp_dir / "build" / "source"


def _copy_file(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
