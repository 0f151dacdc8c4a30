"""
CLI commands for the Node.js runtime cache.

Thin wrappers over ``nodestep.core.services.runtime.cache``.
"""

from __future__ import annotations

import json
import sys

import click

from nodestep.core.errors import NodestepError


def _working_dir(ctx: click.Context):
    from nodestep.core.config.loader import load_config

    try:
        return load_config(ctx.obj.get("config_path")).node.working_dir
    except NodestepError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


@click.group()
def cache() -> None:
    """Runtime cache — status, clear."""


@cache.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show cached Node.js runtimes and their sizes."""
    from nodestep.core.services.runtime.cache import cache_status

    result = cache_status(_working_dir(ctx))

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho(f"📦 {result['working_dir']}", fg="cyan", bold=True)
    if not result["runtimes"]:
        click.echo("   (empty)")
    for rt in result["runtimes"]:
        archive = "  + archive" if rt["archive"] else ""
        click.echo(f"   • {rt['version']} {rt['platform']}  {rt['files']} files, {rt['size_mb']} MB{archive}")
    if result["leftovers"]:
        click.secho("   ⚠️  Leftovers from interrupted runs:", fg="yellow")
        for name in result["leftovers"]:
            click.echo(f"     • {name}")
    click.echo(f"   Total: {result['total_size_mb']} MB")


@cache.command()
@click.option("--version", "version", default=None, help="Only clear this Node.js version.")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, version: str | None, yes: bool) -> None:
    """Delete cached runtimes."""
    from nodestep.core.services.runtime.cache import clear_cache

    working_dir = _working_dir(ctx)
    what = f"Node.js {version}" if version else f"everything under {working_dir}"
    if not yes and not click.confirm(f"Delete {what}?"):
        click.echo("Aborted.")
        return

    result = clear_cache(working_dir, version=version)
    if not result["ok"]:
        click.secho(f"❌ {result['error']}", fg="red")
        sys.exit(1)
    click.secho(f"✅ Cleared: {result['cleared']}", fg="green")
