"""Compose synthesizer.

Every repository may ship deploy/docker-compose.partial.yml. The fragments
of all built parts are merged into one docker-compose.yml:

  1. the part's own fragment: its first service (declared order) becomes
     the part's service, without `build`, with the part image and, for
     web/static parts, ports ["80:80"]
  2. fragments of additionals are merged as they are
  3. lists are unioned, mappings merged recursively, scalars overwritten
  4. links: web → api (alias "api"), api → service (alias = service key)
"""

from pathlib import Path
from typing import Any

import yaml

from product_builder.errors import MergeError
from product_builder.models.config import PartType
from product_builder.models.part import Part
from product_builder.services.validator import validate_compose

COMPOSE_VERSION = "2.0"
PARTIAL_COMPOSE_FILE = Path("deploy") / "docker-compose.partial.yml"


def load_fragment(path: Path) -> dict:
    """Read a partial compose file; a missing or empty file is {}."""
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise MergeError(f"Invalid YAML in {path}: {e}")
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise MergeError(f"Compose fragment {path} must be a mapping")
    return raw


def merge_fragments(fragments: list[dict]) -> dict:
    result: dict = {}
    for fragment in fragments:
        if not isinstance(fragment, dict):
            raise MergeError(f"Compose fragment must be a mapping, got {type(fragment).__name__}")
        _merge_into(result, fragment)
    return result


def _merge_into(target: dict, source: dict) -> None:
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, list) and isinstance(value, list):
            target[key] = _union(current, value)
        elif isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        elif isinstance(value, dict):
            target[key] = merge_fragments([value])
        elif isinstance(value, list):
            target[key] = _union([], value)
        else:
            target[key] = value


def _union(a: list, b: list) -> list:
    # items may be unhashable (mappings), so compare by equality
    result: list = []
    for item in [*a, *b]:
        if item not in result:
            result.append(item)
    return result


def patch_fragment(part: Part, fragment: dict) -> dict:
    """Turn the part's own fragment into its service entry.

    The first service in declared order is used when the fragment declares
    several.
    """
    service: dict[str, Any] = {}
    services = fragment.get("services") or {}
    if not isinstance(services, dict):
        raise MergeError(f"'services' in the compose fragment of {part.key} must be a mapping")
    if services:
        first = next(iter(services.values()))
        if isinstance(first, dict):
            service.update({k: v for k, v in first.items() if k != "build"})
    service["image"] = part.image
    if part.is_web_type:
        service["ports"] = ["80:80"]
    return {"version": COMPOSE_VERSION, "services": {part.key: service}}


def collect_fragments(parts: list[Part]) -> list[dict]:
    """Patched own fragment plus raw additional fragments, per part."""
    fragments: list[dict] = []
    for part in parts:
        own = load_fragment(part.tmp_dir / part.repo_name / PARTIAL_COMPOSE_FILE)
        fragments.append(patch_fragment(part, own))
        for repo in part.additionals:
            fragments.append(load_fragment(part.tmp_dir / repo.repo_name / PARTIAL_COMPOSE_FILE))
    return fragments


def synthesize(parts: list[Part], fragments: list[dict]) -> dict:
    """Merge the fragments and add the links between the parts."""
    doc = merge_fragments(fragments)
    doc["version"] = COMPOSE_VERSION
    services = doc.setdefault("services", {})
    if not isinstance(services, dict):
        raise MergeError("'services' must be a mapping")

    web = [p.key for p in parts if p.type == PartType.WEB]
    api = [p.key for p in parts if p.type == PartType.API]
    backing = [p.key for p in parts if p.type == PartType.SERVICE]

    for a in api:
        for w in web:
            _add_link(services, w, f"{a}:api")
    for s in backing:
        for a in api:
            _add_link(services, a, f"{s}:{s}")

    errors = validate_compose(doc)
    if errors:
        raise MergeError("Invalid docker-compose document: " + "; ".join(errors))
    return doc


def _add_link(services: dict, key: str, link: str) -> None:
    service = services.setdefault(key, {})
    links = service.setdefault("links", [])
    if link not in links:
        links.append(link)


def write_compose(doc: dict, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, indent=2)
