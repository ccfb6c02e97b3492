"""Shared fixtures: build params and a fake command runner.

FakeRunner does not spawn anything. It records the commands and creates
the files the real tools would leave behind (cloned repos with
.yo-rc.json, the scaffolded workspace, bundles, build/source trees).
"""

import json
from pathlib import Path

import pytest
import yaml

from product_builder.errors import SubprocessError
from product_builder.models.config import BuildParams
from product_builder.services.process import CommandRunner
from product_builder.services.reporter import Reporter

PART_TYPES = ("static", "web", "api", "service")


class FakeRunner(CommandRunner):
    def __init__(
        self,
        params: BuildParams,
        fail_on: tuple[str, ...] = (),
        plugin_types: dict[str, str] | None = None,
        fragments: dict[str, dict] | None = None,
        with_dockerfile: bool = True,
        images: tuple[str, ...] = (),
    ):
        super().__init__(params, Reporter(quiet=True))
        self.calls: list[tuple[list[str], Path]] = []
        self.fail_on = fail_on
        self.plugin_types = plugin_types or {}
        self.fragments = fragments or {}
        self.with_dockerfile = with_dockerfile
        self.images = images

    @property
    def commands(self) -> list[str]:
        return [" ".join(cmd) for cmd, _ in self.calls]

    async def run(self, cmd, cwd, part=None, capture=False):
        cmd = list(cmd)
        cwd = Path(cwd)
        self.calls.append((cmd, cwd))
        line = " ".join(cmd)
        for pattern in self.fail_on:
            if pattern in line:
                raise SubprocessError(cmd, 1, output="simulated failure")
        if cmd[:2] == ["docker", "images"]:
            return "\n".join(self.images) + "\n"
        self._side_effect(cmd, cwd)
        return None

    def _side_effect(self, cmd, cwd):
        if cmd[:2] == ["git", "clone"]:
            self._clone(cwd / cmd[-1])
        elif cmd[0] == "yo":
            self._scaffold(cwd)
        elif cmd[0] == "npm" and cmd[1] == "install":
            (cwd / "node_modules").mkdir(exist_ok=True)
        elif cmd[0] == "npm" and cmd[2].startswith("dist"):
            name = cmd[2].rsplit(":", 1)[-1]
            dist = cwd / name / "dist"
            dist.mkdir(parents=True, exist_ok=True)
            (dist / f"{name}.tar.gz").write_bytes(b"bundle")
        elif cmd[0] == "npm" and cmd[2].startswith("build"):
            source = cwd / "build" / "source" / cwd.name
            source.mkdir(parents=True, exist_ok=True)
            (source / "__init__.py").write_text("", encoding="utf-8")
        elif cmd[:2] == ["docker", "save"]:
            Path(cmd[3]).write_bytes(b"image layers")

    def _clone(self, repo_dir: Path):
        name = repo_dir.name
        repo_dir.mkdir(parents=True)
        (repo_dir / "data").mkdir()
        (repo_dir / "data" / "sample.csv").write_text("a,b\n1,2\n", encoding="utf-8")
        (repo_dir / ".yo-rc.json").write_text(
            json.dumps({"generator-phovea": {"type": self.plugin_types.get(name, "app")}}),
            encoding="utf-8",
        )
        (repo_dir / "package.json").write_text(
            json.dumps({"name": name, "version": "3.1.0"}), encoding="utf-8"
        )
        if name in self.fragments:
            deploy = repo_dir / "deploy"
            deploy.mkdir()
            (deploy / "docker-compose.partial.yml").write_text(
                yaml.safe_dump(self.fragments[name]), encoding="utf-8"
            )

    def _scaffold(self, workspace: Path):
        (workspace / "package.json").write_text(
            json.dumps({"name": "phovea_workspace", "version": "0.0.1"}), encoding="utf-8"
        )
        (workspace / "requirements.txt").write_text("phovea_server\n", encoding="utf-8")
        (workspace / "requirements_dev.txt").write_text("pytest\n", encoding="utf-8")
        if self.with_dockerfile:
            for part_type in PART_TYPES:
                dockerfile = workspace / "deploy" / part_type / "Dockerfile"
                dockerfile.parent.mkdir(parents=True, exist_ok=True)
                dockerfile.write_text("FROM scratch\n", encoding="utf-8")


@pytest.fixture
def params(tmp_path):
    return BuildParams(
        product_name="ordino",
        version="1.0.0",
        root=tmp_path,
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "build",
    )


@pytest.fixture
def manifest():
    return {
        "ordino": {"type": "web", "repo": "Caleydo/ordino"},
        "api": {"type": "api", "repo": "phovea/phovea_server"},
        "db": {"type": "service", "repo": "datavisyn/db_service"},
    }
