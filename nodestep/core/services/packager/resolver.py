"""
Packager resolution — turn a packager name into a concrete command.

Three kinds, decided once here and never re-examined downstream:

    builtin      npm / npx bundled with the runtime
    custom       the configured packager, installed into its own prefix
    cli_wrapper  the configured packager's CLI companion (pnpx, ...)

Custom packagers with an ``npm_package`` are installed on first use with
the runtime's own npm::

    npm install --global --no-save --prefix <prefix> <package>@<version>
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from nodestep.core.engine.process import ProcessExecutor
from nodestep.core.errors import PackagerNotConfiguredError
from nodestep.core.models.execution import ExecutionRequest
from nodestep.core.models.packager import PackagerConfig, PackagerKind, ResolvedCommand
from nodestep.core.models.runtime import PlatformKey, RuntimeHandle
from nodestep.core.reliability.locks import KeyedLock
from nodestep.core.services.runtime.platform import resolve_platform

logger = logging.getLogger(__name__)

BUILTIN_COMMANDS = ("npm", "npx")

_PREFIX_LOCKS = KeyedLock()


def npm_command(runtime: RuntimeHandle) -> ResolvedCommand:
    return _builtin("npm", runtime)


def npx_command(runtime: RuntimeHandle) -> ResolvedCommand:
    return _builtin("npx", runtime)


def _builtin(name: str, runtime: RuntimeHandle) -> ResolvedCommand:
    if runtime.downloaded:
        script = runtime.npm_script if name == "npm" else runtime.npx_script
        if script is None:
            raise PackagerNotConfiguredError(
                f"The Node.js runtime at {runtime.home} does not bundle {name}"
            )
        return ResolvedCommand(
            kind=PackagerKind.BUILTIN,
            name=name,
            executable=runtime.node_path,
            base_args=(str(script),),
            path_entries=tuple(runtime.path_entries()),
        )

    command = runtime.npm_command if name == "npm" else runtime.npx_command
    return ResolvedCommand(
        kind=PackagerKind.BUILTIN,
        name=name,
        executable=command or name,
    )


class PackagerResolver:
    """Resolves packager names, installing custom packagers when needed.

    Args:
        executor: Runs the one-time ``npm install`` of custom packagers.
        platform: Host platform, for ``.cmd`` shim names on Windows.
    """

    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        platform: PlatformKey | None = None,
    ):
        self._executor = executor or ProcessExecutor()
        self._platform = platform

    @property
    def platform(self) -> PlatformKey:
        return self._platform or resolve_platform()

    def resolve(
        self,
        name: str,
        config: PackagerConfig | None,
        runtime: RuntimeHandle,
    ) -> ResolvedCommand:
        """Resolve ``name`` against the runtime and the configured packager.

        Raises:
            PackagerNotConfiguredError: Unknown name, or a custom packager
                that has neither an installed binary nor an ``npm_package``.
        """
        if name in BUILTIN_COMMANDS:
            return _builtin(name, runtime)

        if config is not None:
            if name == config.effective_name:
                return self._custom(config, config.command, PackagerKind.CUSTOM, runtime)
            if config.cli_command and name == config.cli_command:
                return self._custom(config, config.cli_command, PackagerKind.CLI_WRAPPER, runtime)

        configured = f" (configured: {config.effective_name})" if config else ""
        raise PackagerNotConfiguredError(f"Packager '{name}' is not configured{configured}")

    def binary_path(self, config: PackagerConfig, command: str) -> Path | None:
        """Where ``command`` lives inside the packager's install prefix.

        npm's global layout puts shims in ``<prefix>/bin`` on Unix and
        directly in ``<prefix>`` on Windows.
        """
        prefix = config.install_prefix()
        return None if prefix is None else self._shim(prefix, command)

    def _shim(self, prefix: Path, command: str) -> Path:
        key = self.platform
        if key.is_windows:
            return prefix / key.command(command)
        return prefix / "bin" / command

    def ensure_installed(self, config: PackagerConfig, runtime: RuntimeHandle) -> Path | None:
        """Install the packager into its prefix unless already there.

        Returns the packager binary, or None when it has no prefix.
        """
        prefix = config.install_prefix()
        if prefix is None:
            return None
        binary = self._shim(prefix, config.command)
        if binary.exists():
            return binary
        if not config.npm_package:
            return None

        with _PREFIX_LOCKS.hold(str(prefix.resolve())):
            if binary.exists():
                return binary

            npm = _builtin("npm", runtime)
            prefix.mkdir(parents=True, exist_ok=True)
            logger.info("Installing %s into %s", config.install_spec(), prefix)
            self._executor.run(ExecutionRequest(
                executable=npm.executable,
                args=tuple(npm.argv(
                    "install", "--global", "--no-save",
                    "--prefix", str(prefix),
                    config.install_spec() or "",
                )),
                working_dir=prefix,
                path_entries=npm.path_entries,
            ))

            if not binary.exists():
                raise PackagerNotConfiguredError(
                    f"Installing {config.install_spec()} did not produce {binary}"
                )
        return binary

    def _custom(
        self,
        config: PackagerConfig,
        command: str,
        kind: PackagerKind,
        runtime: RuntimeHandle,
    ) -> ResolvedCommand:
        self.ensure_installed(config, runtime)

        executable: str | None = None
        binary = self.binary_path(config, command)
        if binary is not None and binary.exists():
            executable = str(binary)
        elif not config.npm_package:
            executable = shutil.which(self.platform.command(command))

        if executable is None:
            raise PackagerNotConfiguredError(
                f"Packager '{config.effective_name}' has no '{command}' binary and no "
                "npmPackage to install it from"
            )

        path_entries = list(runtime.path_entries())
        if binary is not None:
            path_entries.insert(0, str(binary.parent))

        return ResolvedCommand(
            kind=kind,
            name=command,
            executable=executable,
            working_dir=config.install_prefix(),
            path_entries=tuple(path_entries),
        )
