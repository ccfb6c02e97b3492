"""Loaders for phovea_product.json and the product's package.json."""

import json
from datetime import datetime, timezone
from pathlib import Path

from product_builder.errors import ConfigError
from product_builder.services.repo_resolver import repo_name


def load_manifest(path: Path) -> dict[str, dict]:
    """Read the product manifest as a raw part key → entry mapping.

    The legacy list form is keyed by label, name or repo name.
    Validation of the entries happens in part_builder.build_parts.
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Product manifest not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in product manifest {path}: {e}")

    if isinstance(raw, list):
        return _from_list(raw)
    if not isinstance(raw, dict):
        raise ConfigError(f"Product manifest {path} must be an object or a list")
    return raw


def _from_list(entries: list) -> dict[str, dict]:
    result: dict[str, dict] = {}
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"Part #{i} in product manifest is not an object")
        key = entry.get("label") or entry.get("name")
        if not key and entry.get("repo"):
            key = repo_name(entry["repo"])
        if not key:
            raise ConfigError(f"Part #{i} in product manifest has neither label, name nor repo")
        if key in result:
            raise ConfigError(f"Duplicate part key '{key}' in product manifest")
        result[key] = entry
    return result


def load_product_info(path: Path, now: datetime | None = None) -> tuple[str, str]:
    """Read (product name, version) from the product's package.json.

    "ordino_product" → "ordino"; a SNAPSHOT version gets a UTC build id:
    "2.0.0-SNAPSHOT" → "2.0.0-20261019-101500".
    """
    try:
        with open(path, encoding="utf-8") as f:
            pkg = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Product package file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")

    name = pkg.get("name")
    if not name:
        raise ConfigError(f"No 'name' in {path}")
    version = pkg.get("version") or "0.0.1"

    product_name = name[:-len("_product")] if name.endswith("_product") else name
    return product_name, version.replace("SNAPSHOT", build_id(now))


def build_id(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d-%H%M%S")
