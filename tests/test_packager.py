"""
Tests for packager presets and resolution.
"""

from pathlib import Path

import pytest

from fakes import LINUX_X64, RecordingExecutor
from nodestep.core.errors import ConfigError, PackagerNotConfiguredError
from nodestep.core.models.packager import CliConfig, PackagerConfig, PackagerKind
from nodestep.core.models.runtime import PlatformKey, RuntimeHandle, RuntimeSpec
from nodestep.core.reliability.retry import RetryPolicy
from nodestep.core.services.packager.presets import PRESET_NAMES, preset
from nodestep.core.services.packager.resolver import PackagerResolver
from nodestep.core.services.runtime.download import Downloader
from nodestep.core.services.runtime.provisioner import RuntimeProvisioner


SYSTEM_RUNTIME = RuntimeHandle(
    source="system",
    node_path="/usr/bin/node",
    version="18.16.0",
    npm_command="/usr/bin/npm",
    npx_command="/usr/bin/npx",
)


@pytest.fixture
def runtime(dist_mirror, tmp_path: Path, posix_only) -> RuntimeHandle:
    spec = RuntimeSpec(download=True, working_dir=tmp_path / "node", dist_base_url=dist_mirror.url)
    provisioner = RuntimeProvisioner(
        downloader=Downloader(retry=RetryPolicy(max_attempts=1)),
        platform=LINUX_X64,
    )
    return provisioner.provision(spec)


class TestPresets:
    """Tests for the built-in packager presets."""

    def test_names(self):
        assert set(PRESET_NAMES) == {"npm", "pnpm", "yarn", "cnpm"}

    def test_npm(self, tmp_path: Path):
        cfg = preset("npm", tmp_path)
        assert cfg.input_files == ("package.json", "package-lock.json")
        assert cfg.output_files == ("package-lock.json",)
        assert cfg.output_directories == ("node_modules",)
        assert cfg.cli_command == "npx"
        assert cfg.npm_package is None

    def test_pnpm(self, tmp_path: Path):
        cfg = preset("pnpm", tmp_path)
        assert cfg.input_files == ("package.json",)
        assert cfg.output_files == ("pnpm-lock.yaml",)
        assert cfg.cli_command == "pnpx"
        assert cfg.install_prefix() == tmp_path / "pnpm-latest"
        assert cfg.install_spec() == "pnpm@latest"

    def test_yarn_and_cnpm(self, tmp_path: Path):
        assert preset("yarn", tmp_path).input_files == ("package.json", "yarn.lock")
        cnpm = preset("cnpm", tmp_path)
        assert cnpm.output_files == ()
        assert cnpm.output_directories == ("node_modules",)
        assert cnpm.cli is None

    def test_pinned_version_prefix(self, tmp_path: Path):
        cfg = preset("pnpm", tmp_path, version="8.6.0")
        assert cfg.install_prefix() == tmp_path / "pnpm-v8.6.0"
        assert cfg.install_spec() == "pnpm@8.6.0"

    def test_unknown(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Unknown packager"):
            preset("bun", tmp_path)


class TestBuiltins:
    """Tests for npm / npx resolution."""

    def test_npm_downloaded_runs_through_node(self, runtime):
        cmd = PackagerResolver(platform=LINUX_X64).resolve("npm", None, runtime)

        assert cmd.kind is PackagerKind.BUILTIN
        assert cmd.executable == runtime.node_path
        assert cmd.base_args == (str(runtime.npm_script),)
        assert cmd.argv("install") == [str(runtime.npm_script), "install"]
        assert cmd.path_entries == (str(runtime.bin_dir),)

    def test_npx_downloaded(self, runtime):
        cmd = PackagerResolver(platform=LINUX_X64).resolve("npx", None, runtime)
        assert cmd.base_args == (str(runtime.npx_script),)

    def test_system_runtime(self):
        resolver = PackagerResolver(platform=LINUX_X64)
        assert resolver.resolve("npm", None, SYSTEM_RUNTIME).executable == "/usr/bin/npm"
        npx = resolver.resolve("npx", None, SYSTEM_RUNTIME)
        assert npx.executable == "/usr/bin/npx"
        assert npx.base_args == ()

    def test_builtin_wins_over_npm_preset(self, tmp_path: Path):
        cmd = PackagerResolver(platform=LINUX_X64).resolve("npm", preset("npm", tmp_path), SYSTEM_RUNTIME)
        assert cmd.kind is PackagerKind.BUILTIN


class TestCustom:
    """Tests for custom packagers and their CLI wrappers."""

    def test_installs_once(self, runtime, tmp_path: Path):
        executor = RecordingExecutor()
        resolver = PackagerResolver(executor=executor, platform=LINUX_X64)
        cfg = preset("pnpm", tmp_path / "packagers")

        first = resolver.resolve("pnpm", cfg, runtime)
        second = resolver.resolve("pnpm", cfg, runtime)

        assert first == second
        assert first.kind is PackagerKind.CUSTOM
        assert first.executable == str(tmp_path / "packagers" / "pnpm-latest" / "bin" / "pnpm")
        assert len(executor.requests) == 1

        install = executor.requests[0]
        assert install.executable == runtime.node_path
        assert install.args[1:] == (
            "install", "--global", "--no-save",
            "--prefix", str(tmp_path / "packagers" / "pnpm-latest"),
            "pnpm@latest",
        )
        assert (tmp_path / "packagers" / "pnpm-latest" / "installed.log").read_text() == "pnpm@latest\n"

    def test_cli_wrapper(self, runtime, tmp_path: Path):
        resolver = PackagerResolver(platform=LINUX_X64)
        cfg = preset("pnpm", tmp_path)

        cmd = resolver.resolve("pnpx", cfg, runtime)

        assert cmd.kind is PackagerKind.CLI_WRAPPER
        assert cmd.executable.endswith("/pnpm-latest/bin/pnpx")
        assert cmd.path_entries[0] == str(tmp_path / "pnpm-latest" / "bin")
        assert str(runtime.bin_dir) in cmd.path_entries

    def test_custom_name_and_version(self, runtime, tmp_path: Path):
        cfg = PackagerConfig(
            name="mypnpm",
            command="pnpm",
            working_dir=tmp_path,
            npm_package="pnpm",
            version="8.6.0",
            cli=CliConfig(command="pnpx"),
        )
        cmd = PackagerResolver(platform=LINUX_X64).resolve("mypnpm", cfg, runtime)
        assert cmd.executable == str(tmp_path / "mypnpm-v8.6.0" / "bin" / "pnpm")

    def test_preinstalled_binary_without_package(self, tmp_path: Path):
        binary = tmp_path / "tool-latest" / "bin" / "tool"
        binary.parent.mkdir(parents=True)
        binary.write_text("#!/bin/sh\n")
        cfg = PackagerConfig(name="tool", command="tool", working_dir=tmp_path)

        cmd = PackagerResolver(platform=LINUX_X64).resolve("tool", cfg, SYSTEM_RUNTIME)
        assert cmd.executable == str(binary)

    def test_no_package_no_binary(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        cfg = PackagerConfig(name="ghost", command="ghost", working_dir=tmp_path)

        with pytest.raises(PackagerNotConfiguredError, match="npmPackage"):
            PackagerResolver(platform=LINUX_X64).resolve("ghost", cfg, SYSTEM_RUNTIME)

    def test_unknown_name(self, tmp_path: Path):
        with pytest.raises(PackagerNotConfiguredError, match="not configured"):
            PackagerResolver(platform=LINUX_X64).resolve("bun", preset("pnpm", tmp_path), SYSTEM_RUNTIME)

    def test_unknown_name_without_config(self):
        with pytest.raises(PackagerNotConfiguredError):
            PackagerResolver(platform=LINUX_X64).resolve("yarn", None, SYSTEM_RUNTIME)

    def test_windows_shim_location(self, tmp_path: Path):
        resolver = PackagerResolver(platform=PlatformKey(os="windows", arch="x64"))
        cfg = preset("pnpm", tmp_path)
        assert resolver.binary_path(cfg, "pnpm") == tmp_path / "pnpm-latest" / "pnpm.cmd"
