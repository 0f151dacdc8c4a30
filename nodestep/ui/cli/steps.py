"""
CLI commands for node and packager build steps.

Thin wrappers over ``nodestep.core.use_cases.run``. Output of the child
process is streamed; its exit code becomes ours.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from nodestep.core.use_cases.run import RunResult, run_command, split_args

_cmd_option = click.option("--cmd", default=None, help="Sub-command to run (e.g. install, run).")
_args_option = click.option(
    "--args", "args", default=None, help='Arguments, quoted as one string: --args="build --prod".'
)
_force_option = click.option("--force", is_flag=True, help="Run even if up to date.")
_json_option = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")


def _parse_env(ctx: click.Context, param: click.Parameter, value: tuple[str, ...]) -> dict[str, str]:
    env: dict[str, str] = {}
    for item in value:
        key, sep, val = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'")
        env[key] = val
    return env


def _exec_options(f):
    """``--env``, ``--working-dir`` and ``--ignore-exit-value``, shared by every step command."""
    f = click.option(
        "--ignore-exit-value", is_flag=True, help="Don't fail when the command exits non-zero."
    )(f)
    f = click.option(
        "--working-dir",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Directory to run in, relative to the project root.",
    )(f)
    f = click.option(
        "--env", "env", multiple=True, callback=_parse_env, metavar="KEY=VALUE",
        help="Environment variable for the command (repeatable).",
    )(f)
    return f


def _finish(ctx: click.Context, result: RunResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    reports = result.report.reports if result.report else []
    for r in reports:
        if r.skipped:
            if not ctx.obj.get("quiet"):
                click.secho(f"⊘ {r.step_id} ", fg="yellow", nl=False)
                click.echo(f"({r.output})")
        elif r.failed:
            click.secho(f"❌ {r.error}", fg="red")
        elif ctx.obj.get("verbose"):
            click.secho(f"✓ {r.step_id}", fg="green", nl=False)
            click.echo(f" ({r.duration_ms}ms)")

    sys.exit(result.exit_code)


def _run(
    ctx: click.Context,
    kind: str,
    as_json: bool,
    env: dict[str, str],
    working_dir: Path | None,
    ignore_exit_value: bool,
    **kwargs,
) -> None:
    result = run_command(
        kind,
        config_path=ctx.obj.get("config_path"),
        capture=as_json,
        env=env,
        working_dir=working_dir,
        ignore_exit_value=ignore_exit_value,
        **kwargs,
    )
    _finish(ctx, result, as_json)


@click.command()
@click.option("--script", required=True, help="JavaScript file to run.")
@click.option("--opts", "opts", multiple=True, help="Option passed to node itself (repeatable).")
@_args_option
@_json_option
@_exec_options
@click.pass_context
def node(
    ctx: click.Context,
    script: str,
    opts: tuple[str, ...],
    args: str | None,
    as_json: bool,
    env: dict[str, str],
    working_dir: Path | None,
    ignore_exit_value: bool,
) -> None:
    """Run a script with the provisioned node.

    Examples:

        nodestep node --script build.js --args="--prod"

        nodestep node --opts=--max-old-space-size=4096 --script build.js

        nodestep node --script test.js --env CI=1 --ignore-exit-value
    """
    _run(
        ctx, "node", as_json, env, working_dir, ignore_exit_value,
        script=script, opts=list(opts), args=split_args(args),
    )


def _packager_command(name: str, kind: str, doc: str) -> click.Command:
    @click.command(name, help=doc)
    @_cmd_option
    @_args_option
    @_json_option
    @_exec_options
    @click.pass_context
    def command(
        ctx: click.Context,
        cmd: str | None,
        args: str | None,
        as_json: bool,
        env: dict[str, str],
        working_dir: Path | None,
        ignore_exit_value: bool,
    ) -> None:
        _run(ctx, kind, as_json, env, working_dir, ignore_exit_value, cmd=cmd, args=split_args(args))

    return command


npm = _packager_command("npm", "npm", "Run the runtime's bundled npm.")
npx = _packager_command("npx", "npx", "Run the runtime's bundled npx.")
packager = _packager_command("packager", "packager", "Run the configured packager (pnpm, yarn, ...).")
packager_cli = _packager_command(
    "packager-cli", "packager-cli", "Run the configured packager's CLI companion (pnpx, ...)."
)


@click.command()
@_force_option
@_json_option
@_exec_options
@click.pass_context
def install(
    ctx: click.Context,
    force: bool,
    as_json: bool,
    env: dict[str, str],
    working_dir: Path | None,
    ignore_exit_value: bool,
) -> None:
    """Install dependencies with the configured packager, skipping when up to date."""
    _run(ctx, "install", as_json, env, working_dir, ignore_exit_value, force=force)
