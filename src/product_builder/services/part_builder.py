"""Part descriptor builder.

Turns the manifest into the list of resolved Part records:
  1. select the requested parts (--services), in manifest order
  2. validate every entry (type, repo, additionals[].repo)
  3. fill in defaults: repo name/url, branch, image, tmp dir, color, docker tags

Everything here runs before the first subprocess is spawned, so any
ConfigError aborts the run without side effects.
"""

import re
from collections.abc import Mapping

from pydantic import ValidationError

from product_builder.errors import ConfigError, format_validation_error
from product_builder.models.config import BuildParams, PartSpec, ProductManifest
from product_builder.models.part import AdditionalRepo, Part
from product_builder.services.repo_resolver import repo_name, resolve_repo_url

DEFAULT_BRANCH = "master"

# click color names, rotated over the parts for readable interleaved logs
PALETTE = ("cyan", "magenta", "green", "yellow", "blue", "bright_cyan", "bright_magenta", "bright_green")


def build_parts(manifest: ProductManifest | Mapping[str, dict], params: BuildParams) -> list[Part]:
    """Validate the manifest and derive one Part per selected entry."""
    if not isinstance(manifest, ProductManifest):
        manifest = validate_manifest(manifest)

    if len(manifest) == 0:
        raise ConfigError("Product manifest does not declare any part")

    keys = manifest.keys()
    if params.services:
        missing = [s for s in params.services if s not in manifest.root]
        if missing:
            raise ConfigError(
                f"Unknown part(s) {', '.join(missing)}; available: {', '.join(keys)}"
            )
        keys = [k for k in keys if k in params.services]

    single_service = len(keys) == 1
    return [
        _build_part(key, manifest[key], index, single_service, params)
        for index, key in enumerate(keys)
    ]


def validate_manifest(raw: Mapping[str, dict]) -> ProductManifest:
    """Parse raw manifest entries into PartSpecs, reporting the offending key."""
    specs: dict[str, PartSpec] = {}
    for key, entry in raw.items():
        if not isinstance(entry, Mapping):
            raise ConfigError(f"Part '{key}': entry must be an object")
        if not entry.get("type"):
            raise ConfigError(f"Part '{key}': missing 'type'")
        if not entry.get("repo"):
            raise ConfigError(f"Part '{key}': missing 'repo'")
        try:
            specs[key] = PartSpec.model_validate(entry)
        except ValidationError as e:
            raise ConfigError(f"Part '{key}': {format_validation_error(e)}")
    return ProductManifest(specs)


def image_name(product_name: str, key: str, version: str, single_service: bool) -> str:
    """<product>[/<key>]:<version>, the key is left out for single-part runs."""
    if single_service:
        return f"{product_name}:{version}"
    return f"{product_name}/{key}:{version}"


def tmp_dir_name(key: str, index: int) -> str:
    """tmp<index>_<key>; the index keeps keys that sanitize alike apart."""
    return f"tmp{index}_" + re.sub(r"[^A-Za-z0-9_.-]", "_", key)


def docker_tags(image: str, spec_tags: list[str], params: BuildParams) -> list[str]:
    """Target tags of an image.

    Global tags replace the image version, manifest tags are taken verbatim
    and the registry copy of the image comes last.
    """
    registry = params.docker_registry.rstrip("/") if params.docker_registry else None
    repository = image.rsplit(":", 1)[0]

    tags: list[str] = []
    for tag in params.docker_tags:
        target = f"{repository}:{tag}"
        tags.append(f"{registry}/{target}" if registry else target)
    tags.extend(spec_tags)
    if registry and not params.no_default_tags:
        tags.append(f"{registry}/{image}")
    return list(dict.fromkeys(tags))


def _build_part(
    key: str,
    spec: PartSpec,
    index: int,
    single_service: bool,
    params: BuildParams,
) -> Part:
    version = spec.version or params.version
    image = spec.image or image_name(params.product_name, key, version, single_service)

    additionals = [
        AdditionalRepo(
            key=sub_key,
            repo=sub.repo,
            branch=sub.branch or DEFAULT_BRANCH,
            repo_name=sub.repo_name or repo_name(sub.repo),
            repo_url=sub.repo_url or resolve_repo_url(sub.repo, params.use_ssh),
        )
        for sub_key, sub in spec.additionals.items()
    ]

    return Part(
        key=key,
        type=spec.type,
        repo=spec.repo,
        repo_name=spec.repo_name or repo_name(spec.repo),
        repo_url=spec.repo_url or resolve_repo_url(spec.repo, params.use_ssh),
        branch=spec.branch or DEFAULT_BRANCH,
        data=list(spec.data),
        additionals=additionals,
        image=image,
        version=version,
        tmp_dir=params.work_dir / tmp_dir_name(key, index),
        color=PALETTE[index % len(PALETTE)],
        docker_tags=docker_tags(image, spec.docker_tags, params),
    )
