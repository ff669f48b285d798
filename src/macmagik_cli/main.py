"""CLI main entry point."""

import sys

import click

from . import __version__
from .commands.config import config
from .commands.setup import setup
from .commands.teardown import cleanup, recovery
from .commands.verify import verify
from .config import load_config
from .shared.logging import configure_logging, verbosity_to_level


@click.group()
@click.version_option(__version__, prog_name="macmagik")
@click.option("-c", "--config", "config_path", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option("--kubeconfig", type=click.Path(), default=None, help="Kubeconfig path")
@click.option(
    "--non-interactive",
    is_flag=True,
    help="Never prompt for a sudo password (uses sudo -n)",
)
@click.option("--log-file", type=click.Path(), default=None, help="Write JSON logs to this file")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    verbose: int,
    kubeconfig: str | None,
    non_interactive: bool,
    log_file: str | None,
) -> None:
    """Local Kubernetes ingress, TLS and observability bootstrap."""
    ctx.ensure_object(dict)
    try:
        loaded = load_config(
            config_path,
            kubeconfig=kubeconfig,
            non_interactive=non_interactive or None,
        )
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    level = verbosity_to_level(verbose, default=loaded.log_level)
    configure_logging(level, log_file=log_file)

    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = loaded
    ctx.obj["verbose"] = verbose


cli.add_command(setup)
cli.add_command(cleanup)
cli.add_command(recovery)
cli.add_command(verify)
cli.add_command(config)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
