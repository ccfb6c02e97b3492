"""Prepare stage: clone the part's repositories into its tmp dir and
scaffold a workspace around them.

Layout of a prepared workspace:

    <tmp_dir>/
      package.json            generated by yo phovea:workspace
      <repo_name>/            main repository
      <additional repo_name>/ one per additionals entry
      deploy/<type>/...       from the product's templates/<type>
"""

import asyncio
import json
import shutil
from pathlib import Path

from product_builder.errors import PluginTypeError
from product_builder.models.config import BuildParams
from product_builder.models.part import AdditionalRepo, Part
from product_builder.services.process import CommandRunner
from product_builder.services.repo_resolver import credentials_from_env, with_credentials

YO_RC_FILE = ".yo-rc.json"
DEFAULT_GENERATOR = "generator-phovea"


async def prepare(part: Part, params: BuildParams, runner: CommandRunner) -> None:
    await asyncio.to_thread(reset_dir, part.tmp_dir)

    await asyncio.gather(*(clone_repo(repo, part.tmp_dir, runner, part) for repo in part.repos()))
    for repo in part.repos():
        repo.plugin_type = read_plugin_type(part.tmp_dir / repo.repo_name)
        repo.is_hybrid_type = "-" in repo.plugin_type

    await runner.run(
        ["yo", "phovea:workspace", "--noAdditionals", f"--defaultApp={part.repo_name}"],
        part.tmp_dir,
        part,
    )
    patch_workspace_version(part, params)
    await asyncio.to_thread(overlay_templates, part, params.root)


def reset_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


async def clone_repo(
    repo: Part | AdditionalRepo,
    cwd: Path,
    runner: CommandRunner,
    part: Part | None = None,
) -> None:
    url = with_credentials(repo.repo_url, credentials_from_env(runner.params.env))
    await runner.run(
        ["git", "clone", "--depth", "1", "-b", repo.branch, url, repo.repo_name],
        cwd,
        part,
    )


def read_plugin_type(repo_dir: Path) -> str:
    """Plugin type from <repo_dir>/.yo-rc.json.

    {"generator-phovea": {"type": "app-slib"}} → "app-slib"
    """
    path = repo_dir / YO_RC_FILE
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise PluginTypeError(f"{path} not found")
    except json.JSONDecodeError as e:
        raise PluginTypeError(f"Invalid JSON in {path}: {e}")

    if not isinstance(raw, dict):
        raise PluginTypeError(f"{path} must contain an object")
    generator = raw.get(DEFAULT_GENERATOR)
    if generator is None:
        generator = next((v for k, v in raw.items() if k.startswith("generator-")), None)
    plugin_type = generator.get("type") if isinstance(generator, dict) else None
    if not isinstance(plugin_type, str) or not plugin_type:
        raise PluginTypeError(f"No plugin type declared in {path}")
    return plugin_type


def patch_workspace_version(part: Part, params: BuildParams) -> None:
    """Set the workspace package.json version.

    With --injectVersion the part version is used, otherwise the version of
    the default app's own package.json.
    """
    workspace_pkg = part.tmp_dir / "package.json"
    if not workspace_pkg.exists():
        return

    if params.inject_version:
        version = part.version
    else:
        app_pkg = part.tmp_dir / part.repo_name / "package.json"
        if not app_pkg.exists():
            return
        version = json.loads(app_pkg.read_text(encoding="utf-8")).get("version")
        if not version:
            return

    pkg = json.loads(workspace_pkg.read_text(encoding="utf-8"))
    pkg["version"] = version
    workspace_pkg.write_text(json.dumps(pkg, indent=2) + "\n", encoding="utf-8")


def overlay_templates(part: Part, root: Path) -> None:
    """Copy templates/<type> and then templates/<key> over the workspace."""
    for name in (part.type.value, part.key):
        template_dir = root / "templates" / name
        if template_dir.is_dir():
            shutil.copytree(template_dir, part.tmp_dir, dirs_exist_ok=True)
