"""
Tests for the CLI — command wiring, JSON output and exit codes.

Runs against the fake distribution for the host platform.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from nodestep import __version__
from nodestep.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config(dist_mirror, host_key, tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    (project / "package.json").write_text('{"name": "demo"}')
    path = project / "nodestep.yml"
    path.write_text(textwrap.dedent(f"""\
        node:
          version: 18.16.0
          download: true
          distBaseUrl: {dist_mirror.url}
        packager: pnpm
    """))
    return path


def _json(runner: CliRunner, *args: str):
    result = runner.invoke(cli, ["-q", *args])
    return result, json.loads(result.output)


class TestBasics:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("setup", "install", "npm", "npx", "node", "packager-cli", "cache"):
            assert name in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config_file(self, runner, tmp_path: Path):
        result = runner.invoke(cli, ["-c", str(tmp_path / "nope.yml"), "install"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_config_json(self, runner, tmp_path: Path):
        path = tmp_path / "nodestep.yml"
        path.write_text("packager: bun\n")
        result, data = _json(runner, "-c", str(path), "status", "--json")
        assert result.exit_code == 1
        assert "Unknown packager" in data["error"]


class TestStatusAndSetup:
    def test_status_before_setup(self, runner, config):
        result, data = _json(runner, "-c", str(config), "status", "--json")

        assert result.exit_code == 0
        assert data["node"]["download"] is True
        assert data["node"]["provisioned"] is False
        assert data["packager"] == {"name": "pnpm", "installed": False, "last_install": None}
        assert data["cache"]["runtimes"] == []

    def test_setup_then_status(self, runner, config, host_key):
        result, data = _json(runner, "-c", str(config), "setup", "--json")
        assert result.exit_code == 0, result.output
        assert data["runtime"]["version"] == "18.16.0"
        assert data["packager"]["kind"] == "custom"

        _, status = _json(runner, "-c", str(config), "status", "--json")
        assert status["platform"] == host_key.slug
        assert status["node"]["provisioned"] is True
        assert status["packager"]["installed"] is True

    def test_setup_human_output(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "setup"])
        assert result.exit_code == 0
        assert "Node.js 18.16.0" in result.output


class TestSteps:
    def test_install_twice(self, runner, config):
        first, data = _json(runner, "-c", str(config), "install", "--json")
        assert first.exit_code == 0, first.output
        assert data["succeeded"] == 1

        second, data = _json(runner, "-c", str(config), "install", "--json")
        assert second.exit_code == 0
        assert data["skipped"] == 1

        _, status = _json(runner, "-c", str(config), "status", "--json")
        assert status["packager"]["last_install"] is not None

    def test_packager_args_string(self, runner, config):
        result, data = _json(
            runner, "-c", str(config), "packager", "--cmd", "run", "--args=build --prod", "--json",
        )
        assert result.exit_code == 0
        assert data["reports"][0]["output"].strip() == "pnpm run build --prod"

    def test_node_exit_code_propagates(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "node", "--script", "fail.js"])
        assert result.exit_code == 3

    def test_node_requires_script(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "node"])
        assert result.exit_code == 2
        assert "--script" in result.output

    def test_env_and_working_dir(self, runner, config):
        (config.parent / "web").mkdir()
        result, data = _json(
            runner, "-c", str(config), "node", "--script", "env.js",
            "--env", "FAKE_ENV=from-cli", "--working-dir", "web", "--json",
        )
        assert result.exit_code == 0, result.output
        output = data["reports"][0]["output"]
        assert "FAKE_ENV=from-cli" in output
        assert "/web" in output

    def test_env_needs_key_and_value(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "node", "--script", "a.js", "--env", "NOVALUE"])
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_missing_working_dir(self, runner, config):
        result = runner.invoke(cli, ["-c", str(config), "npm", "--cmd", "ls", "--working-dir", "nope"])
        assert result.exit_code == 1
        assert "Working directory not found" in result.output

    def test_ignore_exit_value(self, runner, config):
        result = runner.invoke(
            cli, ["-c", str(config), "node", "--script", "fail.js", "--ignore-exit-value"]
        )
        assert result.exit_code == 0


class TestCache:
    def test_status_and_clear(self, runner, config):
        runner.invoke(cli, ["-q", "-c", str(config), "setup", "--json"])

        result, data = _json(runner, "-c", str(config), "cache", "status", "--json")
        assert result.exit_code == 0
        assert [rt["version"] for rt in data["runtimes"]] == ["18.16.0"]
        assert data["runtimes"][0]["archive"] is True
        assert data["leftovers"] == []

        cleared = runner.invoke(cli, ["-c", str(config), "cache", "clear", "--version", "v18.16.0", "-y"])
        assert cleared.exit_code == 0
        assert "18.16.0" in cleared.output
        assert not (config.parent / ".nodestep" / "nodejs" / "18.16.0").exists()

    def test_clear_asks_for_confirmation(self, runner, config):
        runner.invoke(cli, ["-q", "-c", str(config), "setup", "--json"])

        result = runner.invoke(cli, ["-c", str(config), "cache", "clear"], input="n\n")
        assert "Aborted" in result.output
        assert (config.parent / ".nodestep" / "nodejs").is_dir()

    def test_clear_refuses_outside_path(self, runner, config):
        keep = config.parent / ".nodestep" / "keep"
        keep.mkdir(parents=True)
        result = runner.invoke(cli, ["-c", str(config), "cache", "clear", "--version", "../keep", "-y"])
        assert result.exit_code == 1
        assert keep.is_dir()
