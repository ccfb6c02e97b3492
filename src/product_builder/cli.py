import json
import os
from pathlib import Path

import click

from product_builder.errors import BuildError
from product_builder.models.config import BuildParams
from product_builder.services.manifest_loader import load_manifest, load_product_info
from product_builder.services.orchestrator import run_build
from product_builder.services.part_builder import build_parts
from product_builder.services.repo_resolver import redact_credentials
from product_builder.services.reporter import Reporter


class AliasedGroup(click.Group):
    _aliases = {"b": "build", "d": "describe"}

    def get_command(self, ctx, cmd_name):
        return super().get_command(ctx, self._aliases.get(cmd_name, cmd_name))


def _csv(ctx, param, value):
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


_COMMON_OPTIONS = [
    click.option("--manifest", "-m", default="phovea_product.json", envvar="PHOVEA_MANIFEST", type=click.Path(path_type=Path), help="Product manifest (phovea_product.json)"),
    click.option("--package", "-p", "package_file", default="package.json", envvar="PHOVEA_PACKAGE", type=click.Path(path_type=Path), help="Product package.json providing name and version"),
    click.option("--productName", "product_name", default=None, envvar="PHOVEA_PRODUCT_NAME", help="Override product name"),
    click.option("--version", "-v", "version", default=None, envvar="PHOVEA_VERSION", help="Override product version"),
    click.option("--services", default=None, envvar="PHOVEA_SERVICES", callback=_csv, help="Comma separated part keys to build"),
    click.option("--useSSH", "use_ssh", is_flag=True, default=False, envvar="PHOVEA_USE_SSH", help="Clone with ssh instead of https"),
    click.option("--dockerRegistry", "docker_registry", default=None, envvar="PHOVEA_DOCKER_REGISTRY", help="Registry host the images are tagged and pushed to"),
    click.option("--dockerTags", "docker_tags", default=None, envvar="PHOVEA_DOCKER_TAGS", callback=_csv, help="Comma separated extra image tags"),
    click.option("--noDefaultTags", "no_default_tags", is_flag=True, default=False, envvar="PHOVEA_NO_DEFAULT_TAGS", help="Do not tag <registry>/<image>"),
]

_BUILD_OPTIONS = [
    click.option("--skipTests", "skip_tests", is_flag=True, default=False, envvar="PHOVEA_SKIP_TESTS", help="Skip tests and dev requirements"),
    click.option("--skipDocker", "skip_docker", is_flag=True, default=False, envvar="PHOVEA_SKIP_DOCKER", help="Skip building and pushing images"),
    click.option("--skipPush", "skip_push", is_flag=True, default=False, envvar="PHOVEA_SKIP_PUSH", help="Build images but do not push them"),
    click.option("--saveImage", "save_image", is_flag=True, default=False, envvar="PHOVEA_SAVE_IMAGE", help="Write gzipped docker save archives to the output dir"),
    click.option("--removeImages", "remove_images", is_flag=True, default=False, envvar="PHOVEA_REMOVE_IMAGES", help="Remove local images of the product before building"),
    click.option("--injectVersion", "inject_version", is_flag=True, default=False, envvar="PHOVEA_INJECT_VERSION", help="Write the product version into each workspace"),
    click.option("--dockerBuildArgs", "docker_build_args", default=None, envvar="PHOVEA_DOCKER_BUILD_ARGS", help="Extra docker build args, e.g. 'A=1,B=2'"),
    click.option("--serial", is_flag=True, default=False, envvar="PHOVEA_SERIAL", help="Build the parts one after another"),
    click.option("--quiet", "-q", is_flag=True, default=False, envvar="PHOVEA_QUIET", help="Only print errors and the summary"),
    click.option("--timeout", type=float, default=None, envvar="PHOVEA_TIMEOUT", help="Timeout in seconds for each external command"),
    click.option("--outputDir", "output_dir", default="build", envvar="PHOVEA_OUTPUT_DIR", type=click.Path(path_type=Path), help="Directory for bundles and docker-compose.yml"),
]


def _options(options):
    def decorator(f):
        for option in reversed(options):
            f = option(f)
        return f

    return decorator


@click.group(cls=AliasedGroup)
def cli():
    """Phovea product builder."""
    pass


@cli.command()
@_options(_COMMON_OPTIONS)
@_options(_BUILD_OPTIONS)
def build(manifest, package_file, product_name, version, docker_build_args, **options):
    """Build, dockerize and push all parts of the product."""
    try:
        params = _make_params(
            package_file, product_name, version,
            docker_build_args=(docker_build_args,) if docker_build_args else (),
            **options,
        )
        reporter = Reporter(quiet=params.quiet)
        if params.skip_tests:
            reporter.info("skipping tests")
        parts = build_parts(load_manifest(manifest), params)
        report = run_build(parts, params, reporter)
    except BuildError as e:
        raise click.ClickException(str(e))

    if not report.success:
        click.get_current_context().exit(1)


@cli.command()
@_options(_COMMON_OPTIONS)
def describe(manifest, package_file, product_name, version, **options):
    """Print the resolved parts as JSON without building anything."""
    try:
        params = _make_params(package_file, product_name, version, **options)
        parts = build_parts(load_manifest(manifest), params)
    except BuildError as e:
        raise click.ClickException(str(e))

    data = [
        {**p.model_dump(mode="json"), "isWebType": p.is_web_type, "isServerType": p.is_server_type}
        for p in parts
    ]
    click.echo(redact_credentials(json.dumps(data, indent=2, ensure_ascii=False)))


def _make_params(package_file: Path, product_name: str | None, version: str | None, **options) -> BuildParams:
    if not (product_name and version):
        pkg_name, pkg_version = load_product_info(package_file)
        product_name = product_name or pkg_name
        version = version or pkg_version

    root = Path(".")
    return BuildParams.create(
        dict(os.environ),
        product_name=product_name,
        version=version,
        root=root,
        work_dir=root,
        **{k: v for k, v in options.items() if v is not None},
    )


if __name__ == "__main__":
    cli()
