"""
nodestep — CLI entrypoint.

Usage:
    nodestep --help
    nodestep setup
    nodestep install
    nodestep npm --cmd run --args="build"
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from nodestep import __version__
from nodestep.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="nodestep")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to nodestep.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """nodestep — provision Node.js and run package managers as build steps."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show runtime, packager and cache status."""
    from nodestep.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    config = result.config
    if result.error or config is None:
        click.secho(f"❌ {result.error or 'No configuration loaded'}", fg="red")
        sys.exit(1)

    if not ctx.obj.get("quiet"):
        click.secho(f"\n📋 {config.project_root}", fg="cyan", bold=True)
        if result.config_path:
            click.echo(f"   Config: {result.config_path}")
        click.echo(f"   Platform: {result.platform}")
        click.echo()

    mode = "download" if config.node.download else "system"
    if result.runtime is not None:
        click.secho(f"   ✓ Node.js {result.runtime.version or config.node.version} ", fg="green", nl=False)
        click.echo(f"({mode})  → {result.runtime.node_path}")
    else:
        click.secho(f"   ✗ Node.js {config.node.version} ", fg="red", nl=False)
        click.echo(f"({mode}, not provisioned)")

    if result.packager_installed:
        click.secho(f"   ✓ {result.packager_name}", fg="green")
    else:
        click.secho(f"   ✗ {result.packager_name} ", fg="red", nl=False)
        click.echo("(not installed)")

    if result.install_recorded_at:
        click.echo(f"     last install: {result.install_recorded_at}")

    click.echo()
    click.secho(f"   Cache: {result.cache.get('total_size_mb', 0)} MB", fg="white", bold=True)
    for rt in result.cache.get("runtimes", []):
        click.echo(f"     • {rt['version']} {rt['platform']}  ({rt['size_mb']} MB)")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, as_json: bool) -> None:
    """Provision Node.js and install the configured packager."""
    from nodestep.core.use_cases.run import setup as run_setup

    result = run_setup(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    runtime, packager = result.runtime, result.packager
    if result.error or runtime is None or packager is None:
        click.secho(f"❌ {result.error or 'Setup did not complete'}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Node.js {runtime.version}", fg="green", bold=True)
    click.echo(f"   {runtime.node_path}")
    click.secho(f"✅ {packager.name}", fg="green", bold=True)
    click.echo(f"   {packager.executable}")


# ── Register sub-commands from nodestep/ui/cli/ ──────────────────

from nodestep.ui.cli.cache import cache  # noqa: E402
from nodestep.ui.cli.steps import install, node, npm, npx, packager, packager_cli  # noqa: E402

cli.add_command(node)
cli.add_command(npm)
cli.add_command(npx)
cli.add_command(packager)
cli.add_command(packager_cli)
cli.add_command(install)
cli.add_command(cache)


if __name__ == "__main__":
    cli()
