"""Config command - show the effective configuration."""

from __future__ import annotations

import json

import click

from ..config import config_keys, get_config_path
from ..context import get_config


@click.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx: click.Context, json_output: bool) -> None:
    """Show effective configuration and where each value came from."""
    loaded = get_config(ctx)

    if json_output:
        data = {
            key: {"value": getattr(loaded, key), "source": loaded.get_source(key)}
            for key in config_keys()
        }
        click.echo(json.dumps(data, indent=2, default=str))
        return

    click.echo("macmagik configuration")
    click.echo(f"File: {ctx.obj.get('config_path') or get_config_path()}\n")
    width = max(len(key) for key in config_keys())
    for key in config_keys():
        value = getattr(loaded, key)
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        click.echo(f"  {key:<{width}}  {value}  ({loaded.get_source(key)})")
