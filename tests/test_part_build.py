"""Tests for the install and build stages."""

import asyncio

import pytest

from product_builder.errors import SubprocessError
from product_builder.services import part_build
from product_builder.services.part_builder import build_parts
from product_builder.services.reporter import Reporter
from product_builder.services.workspace import prepare

from conftest import FakeRunner


def _prepared(params, manifest_entry, runner):
    [part] = build_parts({"p": manifest_entry}, params)
    asyncio.run(prepare(part, params, runner))
    runner.calls.clear()
    return part


def _run(coro):
    return asyncio.run(coro)


class TestInstall:
    def test_web_npm_install(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "web", "repo": "Caleydo/ordino"}, runner)
        _run(part_build.install(part, params, runner, Reporter(quiet=True)))
        assert runner.commands == ["npm install"]
        assert runner.calls[0][1] == part.tmp_dir

    def test_server_requirements(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "api", "repo": "phovea/phovea_server"}, runner)
        _run(part_build.install(part, params, runner, Reporter(quiet=True)))
        assert runner.commands == [
            "pip install --no-cache-dir -r requirements.txt",
            "pip install --no-cache-dir -r requirements_dev.txt",
        ]

    def test_dev_requirements_skipped_when_missing(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "service", "repo": "org/db"}, runner)
        (part.tmp_dir / "requirements_dev.txt").unlink()
        _run(part_build.install(part, params, runner, Reporter(quiet=True)))
        assert runner.commands == ["pip install --no-cache-dir -r requirements.txt"]

    def test_dev_requirements_skipped_without_tests(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "api", "repo": "phovea/phovea_server"}, runner)
        no_tests = params.model_copy(update={"skip_tests": True})
        _run(part_build.install(part, no_tests, runner, Reporter(quiet=True)))
        assert runner.commands == ["pip install --no-cache-dir -r requirements.txt"]

    def test_failing_install_is_fatal(self, params):
        runner = FakeRunner(params, fail_on=("requirements.txt",))
        part = _prepared(params, {"type": "api", "repo": "phovea/phovea_server"}, runner)
        with pytest.raises(SubprocessError):
            _run(part_build.install(part, params, runner, Reporter(quiet=True)))


class TestBuildWeb:
    def test_dist_and_bundle(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "web", "repo": "Caleydo/ordino"}, runner)
        (part.tmp_dir / "node_modules").mkdir()
        _run(part_build.build(part, params, runner, Reporter(quiet=True)))

        assert runner.commands == ["npm run dist:ordino"]
        assert (params.output_dir / "p.tar.gz").read_bytes() == b"bundle"
        assert not (part.tmp_dir / "node_modules").exists()

    def test_hybrid_and_additional_tests(self, params):
        runner = FakeRunner(params, plugin_types={"ordino": "app-slib", "tdp_core": "lib-slib", "tdp_ui": "lib"})
        part = _prepared(params, {
            "type": "web",
            "repo": "Caleydo/ordino",
            "additionals": {"core": {"repo": "datavisyn/tdp_core"}, "ui": {"repo": "datavisyn/tdp_ui"}},
        }, runner)
        _run(part_build.build(part, params, runner, Reporter(quiet=True)))
        assert runner.commands == [
            "npm run test:web:tdp_core",
            "npm run test:tdp_ui",
            "npm run dist:web:ordino",
        ]

    def test_tests_skipped(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {
            "type": "web",
            "repo": "Caleydo/ordino",
            "additionals": {"core": {"repo": "datavisyn/tdp_core"}},
        }, runner)
        _run(part_build.build(part, params.model_copy(update={"skip_tests": True}), runner, Reporter(quiet=True)))
        assert runner.commands == ["npm run dist:ordino"]

    def test_missing_bundle(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {"type": "static", "repo": "org/docs"}, runner)

        class NoBundle(FakeRunner):
            def _side_effect(self, cmd, cwd):
                pass

        with pytest.raises(FileNotFoundError):
            _run(part_build.build(part, params, NoBundle(params), Reporter(quiet=True)))


class TestBuildServer:
    def test_build_all_repos_and_aggregate(self, params):
        runner = FakeRunner(params, plugin_types={"phovea_server": "service", "tdp_core": "lib-slib"})
        part = _prepared(params, {
            "type": "api",
            "repo": "phovea/phovea_server",
            "additionals": {"core": {"repo": "datavisyn/tdp_core"}},
        }, runner)
        deploy = part.tmp_dir / "phovea_server" / "deploy"
        deploy.mkdir()
        (deploy / "start.sh").write_text("#!/bin/sh\n", encoding="utf-8")

        _run(part_build.build(part, params, runner, Reporter(quiet=True)))

        assert runner.commands == ["npm run build", "npm run build:python"]
        assert [cwd.name for _, cwd in runner.calls] == ["phovea_server", "tdp_core"]
        source = part_build.source_dir(part)
        assert (source / "phovea_server" / "__init__.py").exists()
        assert (source / "tdp_core" / "__init__.py").exists()
        assert (part.tmp_dir / "deploy" / "start.sh").exists()

    def test_additional_build_failure(self, params):
        runner = FakeRunner(params)
        part = _prepared(params, {
            "type": "service",
            "repo": "org/db",
            "additionals": {"core": {"repo": "datavisyn/tdp_core"}},
        }, runner)
        failing = FakeRunner(params, fail_on=("npm run build",))
        with pytest.raises(SubprocessError):
            _run(part_build.build(part, params, failing, Reporter(quiet=True)))
        assert len(failing.calls) == 1
