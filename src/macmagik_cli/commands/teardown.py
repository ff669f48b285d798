"""Cleanup and recovery commands.

Both are best effort: every step is reported and the exit code is 0.
"""

from __future__ import annotations

import sys

import click

from ..bootstrap import (
    DeleteOutcome,
    Recovery,
    StepOutcome,
    Teardown,
    TeardownReport,
)
from ..context import get_config, get_tools

OUTCOME_MARKERS = {
    DeleteOutcome.DELETED: "✓",
    DeleteOutcome.ALREADY_ABSENT: "·",
    DeleteOutcome.IGNORED: "⚠",
}


def _on_step(step: StepOutcome) -> None:
    marker = OUTCOME_MARKERS[step.outcome]
    label = step.outcome.value.replace("_", " ")
    click.echo(f"  {marker} {step.step}: {label}")


def _print_report(report: TeardownReport, title: str) -> None:
    click.echo("\n" + "=" * 50)
    click.echo(
        f"✓ {title}: {report.count(DeleteOutcome.DELETED)} removed, "
        f"{report.count(DeleteOutcome.ALREADY_ABSENT)} already absent"
    )
    if report.warnings:
        click.echo(f"\n⚠ {len(report.warnings)} step(s) need attention:")
        for warning in report.warnings:
            click.echo(f"  ⚠ {warning}")
    click.echo("=" * 50 + "\n")


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cleanup(ctx: click.Context, yes: bool) -> None:
    """Remove everything `macmagik setup` installed.

    Deletes the tracing, monitoring and ingress components in reverse
    install order, then the keychain entry, TLS secrets and hosts entries.
    """
    config = get_config(ctx)
    click.echo("\n🧹 macmagik cleanup\n")
    click.echo("This will remove:")
    click.echo("  - NGINX Ingress Controller and the echo test app")
    click.echo("  - Prometheus, Grafana, AlertManager and Jaeger")
    click.echo(f"  - The {config.wildcard} certificate from the keychain")
    click.echo(f"  - Hosts entries under {config.domain}")

    if not yes and not click.confirm("\nContinue?", default=False):
        click.echo("Cleanup cancelled.")
        sys.exit(0)

    tools = get_tools(ctx)
    click.echo("")
    report = Teardown(config, tools, on_step=_on_step).run()
    _print_report(report, "Cleanup complete")
    click.echo("Run `macmagik setup` to reinstall.")
    sys.exit(report.exit_code)


@click.command()
@click.pass_context
def recovery(ctx: click.Context) -> None:
    """Force-remove stuck namespaces, finalizers and releases.

    Safe to run repeatedly. Follow with `macmagik setup`.
    """
    config = get_config(ctx)
    tools = get_tools(ctx)

    click.echo("\n🔧 macmagik recovery\n")
    report = Recovery(config, tools, on_step=_on_step).run()
    _print_report(report, "Recovery complete")
    click.echo("Next: macmagik setup")
    sys.exit(report.exit_code)
