"""
Run use case — node / npm / npx / packager invocations as build steps.

Each command becomes one ``BuildStep`` whose action is the full chain:

    provision runtime → resolve packager → execute

Only ``install`` declares inputs and outputs, so it is the only step the
incremental gate can skip. Ad-hoc commands always run.
"""

from __future__ import annotations

import logging
import shlex
import threading
from dataclasses import dataclass, field
from pathlib import Path

from nodestep.core.config.loader import active_packager, load_config
from nodestep.core.engine.process import ProcessExecutor
from nodestep.core.engine.steps import BuildStep, StepRunReport, run_steps
from nodestep.core.errors import NodestepError
from nodestep.core.models.config import NodestepConfig
from nodestep.core.models.execution import ExecutionRequest, ExecutionResult
from nodestep.core.models.packager import ResolvedCommand
from nodestep.core.models.runtime import RuntimeHandle
from nodestep.core.persistence.fingerprint_store import FingerprintStore
from nodestep.core.services.incremental import command_signature
from nodestep.core.services.packager.resolver import PackagerResolver
from nodestep.core.services.runtime.provisioner import RuntimeProvisioner

logger = logging.getLogger(__name__)


class Toolchain:
    """The collaborators every step needs, shared across a run."""

    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        provisioner: RuntimeProvisioner | None = None,
        resolver: PackagerResolver | None = None,
    ):
        self.executor = executor or ProcessExecutor()
        self.provisioner = provisioner or RuntimeProvisioner()
        self.resolver = resolver or PackagerResolver(executor=self.executor)


@dataclass(frozen=True)
class StepOptions:
    """How the child of a step is run.

    ``working_dir`` is relative to the project root; declared inputs and
    outputs of a gated step resolve against it.
    """

    capture: bool = True
    env: dict[str, str] = field(default_factory=dict)
    working_dir: Path | None = None
    ignore_exit_value: bool = False

    def cwd(self, config: NodestepConfig) -> Path:
        if self.working_dir is None:
            return config.project_root
        return config.project_root / self.working_dir

    def signature_parts(self, config: NodestepConfig) -> list[str]:
        """Settings that change what the child does, for the command signature."""
        parts = [f"{k}={v}" for k, v in sorted(self.env.items())]
        if self.working_dir is not None:
            parts.append(f"cwd={self.cwd(config)}")
        return parts


def split_args(args: str | None) -> list[str]:
    """``--args="install --frozen-lockfile"`` → ``["install", "--frozen-lockfile"]``."""
    return shlex.split(args) if args else []


def step_id(name: str, cmd: str | None = None) -> str:
    """``pnpm`` + ``install`` → ``pnpm:install``; also the fingerprint key."""
    return ":".join([name, *([cmd] if cmd else [])])


def install_step_id(packager_name: str) -> str:
    return step_id(packager_name, "install")


# ── Step builders ───────────────────────────────────────────────


def _request(
    command: ResolvedCommand | RuntimeHandle,
    args: list[str],
    config: NodestepConfig,
    options: StepOptions,
) -> ExecutionRequest:
    if isinstance(command, RuntimeHandle):
        executable, argv, path_entries = command.node_path, args, tuple(command.path_entries())
    else:
        executable, argv, path_entries = command.executable, command.argv(*args), command.path_entries
    return ExecutionRequest(
        executable=executable,
        args=tuple(argv),
        working_dir=options.cwd(config),
        env=options.env,
        path_entries=path_entries,
        capture=options.capture,
    )


def _execute(
    toolchain: Toolchain,
    request: ExecutionRequest,
    options: StepOptions,
    cancel_event: threading.Event | None,
) -> ExecutionResult:
    result = toolchain.executor.run(
        request, check=not options.ignore_exit_value, cancel_event=cancel_event
    )
    if not result.succeeded:
        logger.info("Ignoring exit value %d of %s", result.exit_code, request.command_line)
    return result


def node_step(
    config: NodestepConfig,
    toolchain: Toolchain,
    script: str,
    opts: list[str] | None = None,
    args: list[str] | None = None,
    options: StepOptions | None = None,
) -> BuildStep:
    """``node [opts] <script> [args]``."""
    options = options or StepOptions()
    argv = [*(opts or []), script, *(args or [])]

    def action(cancel_event: threading.Event | None) -> ExecutionResult:
        runtime = toolchain.provisioner.provision(config.node)
        return _execute(toolchain, _request(runtime, argv, config, options), options, cancel_event)

    return BuildStep(
        id=step_id("node", script),
        action=action,
        base_dir=options.cwd(config),
        signature=command_signature(["node", *argv, *options.signature_parts(config)]),
    )


def packager_step(
    config: NodestepConfig,
    toolchain: Toolchain,
    name: str,
    cmd: str | None = None,
    args: list[str] | None = None,
    options: StepOptions | None = None,
    gated: bool = False,
) -> BuildStep:
    """``<packager> [cmd] [args]`` for a builtin, custom or CLI-wrapper name.

    ``gated`` attaches the packager's declared inputs and outputs so the
    step can be skipped when up to date.
    """
    options = options or StepOptions()
    packager = active_packager(config)
    argv = [*([cmd] if cmd else []), *(args or [])]

    def action(cancel_event: threading.Event | None) -> ExecutionResult:
        runtime = toolchain.provisioner.provision(config.node)
        resolved = toolchain.resolver.resolve(name, packager, runtime)
        return _execute(toolchain, _request(resolved, argv, config, options), options, cancel_event)

    step = BuildStep(
        id=step_id(name, cmd),
        action=action,
        base_dir=options.cwd(config),
        signature=command_signature([name, *argv, *options.signature_parts(config)]),
    )
    if gated:
        step.inputs = packager.input_files
        step.outputs = packager.output_files
        step.output_dirs = packager.output_directories
    return step


def install_step(
    config: NodestepConfig,
    toolchain: Toolchain,
    options: StepOptions | None = None,
) -> BuildStep:
    """``<packager> install`` gated on the packager's inputs and outputs."""
    packager = active_packager(config)
    return packager_step(
        config, toolchain, packager.effective_name, "install", options=options, gated=True
    )


# ── Results ─────────────────────────────────────────────────────


@dataclass
class RunResult:
    """Outcome of a run request."""

    report: StepRunReport | None = None
    config: NodestepConfig | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        """0 on success, the child's code when it failed, 1 otherwise."""
        if self.error:
            return 1
        if self.report is None or self.report.failed == 0:
            return 0
        for r in self.report.reports:
            if r.failed:
                return r.exit_code if r.exit_code else 1
        return 1

    def to_dict(self) -> dict:
        result: dict = {"exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.report is not None:
            result.update(self.report.to_dict())
        return result


def run_build_steps(
    steps: list[BuildStep],
    config: NodestepConfig,
    *,
    force: bool = False,
    cancel_event: threading.Event | None = None,
    max_workers: int = 4,
) -> RunResult:
    """Run steps with the config's fingerprint store."""
    store = FingerprintStore(config.state_dir)
    report = run_steps(
        steps, store, max_workers=max_workers, force=force, cancel_event=cancel_event
    )
    return RunResult(report=report, config=config)


def run_command(
    kind: str,
    *,
    config_path: Path | None = None,
    cmd: str | None = None,
    args: list[str] | None = None,
    opts: list[str] | None = None,
    script: str | None = None,
    force: bool = False,
    capture: bool = True,
    env: dict[str, str] | None = None,
    working_dir: Path | None = None,
    ignore_exit_value: bool = False,
    toolchain: Toolchain | None = None,
    cancel_event: threading.Event | None = None,
) -> RunResult:
    """Load config, build the step for ``kind`` and run it.

    Args:
        kind: ``node``, ``npm``, ``npx``, ``packager``, ``packager-cli`` or ``install``.
        env: Extra environment variables for the child.
        working_dir: Where the child runs, relative to the project root.
        ignore_exit_value: Report a non-zero exit as success instead of failing.
    """
    try:
        config = load_config(config_path)
    except NodestepError as e:
        return RunResult(error=str(e))

    toolchain = toolchain or Toolchain()
    options = StepOptions(
        capture=capture,
        env=dict(env or {}),
        working_dir=working_dir,
        ignore_exit_value=ignore_exit_value,
    )

    try:
        if kind == "node":
            if not script:
                return RunResult(config=config, error="No script given (use --script)")
            step = node_step(config, toolchain, script, opts, args, options)
        elif kind in ("npm", "npx"):
            step = packager_step(config, toolchain, kind, cmd, args, options)
        elif kind == "packager":
            step = packager_step(
                config, toolchain, active_packager(config).effective_name, cmd, args, options
            )
        elif kind == "packager-cli":
            packager = active_packager(config)
            if not packager.cli_command:
                return RunResult(
                    config=config,
                    error=f"Packager '{packager.effective_name}' has no CLI command configured",
                )
            step = packager_step(config, toolchain, packager.cli_command, cmd, args, options)
        elif kind == "install":
            step = install_step(config, toolchain, options)
        else:
            return RunResult(config=config, error=f"Unknown command kind: {kind}")
    except NodestepError as e:
        return RunResult(config=config, error=str(e))

    if not options.cwd(config).is_dir():
        return RunResult(config=config, error=f"Working directory not found: {options.cwd(config)}")

    return run_build_steps([step], config, force=force, cancel_event=cancel_event)


# ── Setup ───────────────────────────────────────────────────────


@dataclass
class SetupResult:
    """Provisioned runtime and (installed) packager."""

    runtime: RuntimeHandle | None = None
    packager: ResolvedCommand | None = None
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "error_type": self.error_type}
        return {
            "runtime": self.runtime.model_dump(mode="json") if self.runtime else None,
            "packager": self.packager.model_dump(mode="json") if self.packager else None,
        }


def setup(config_path: Path | None = None, toolchain: Toolchain | None = None) -> SetupResult:
    """Provision the runtime and install the configured packager."""
    result = SetupResult()
    toolchain = toolchain or Toolchain()

    try:
        config = load_config(config_path)
        result.runtime = toolchain.provisioner.provision(config.node)

        packager = active_packager(config)
        result.packager = toolchain.resolver.resolve(
            packager.effective_name, packager, result.runtime
        )
    except NodestepError as e:
        result.error = str(e)
        result.error_type = type(e).__name__
        return result

    logger.info("Setup complete: node %s, packager %s", result.runtime.version, result.packager.name)
    return result
