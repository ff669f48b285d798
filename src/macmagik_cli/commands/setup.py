"""Setup command for bootstrapping the local environment.

This module provides the `macmagik setup` command which installs the
ingress controller, wildcard certificate and (optionally) the monitoring
and tracing stacks on the local cluster.
"""

from __future__ import annotations

import sys

import click

from ..bootstrap import (
    ComponentSpec,
    InstallOutcome,
    InstallStatus,
    Sequencer,
    SequencerState,
    SetupResult,
    build_component_specs,
)
from ..config import BootstrapConfig
from ..context import get_config, get_tools

STATE_HEADERS = {
    SequencerState.PREREQ_CHECK: "Step 1: Prerequisites",
    SequencerState.CORE_INSTALL: "Step 2: Ingress, certificate and echo app",
    SequencerState.MONITORING_INSTALL: "Step 3: Monitoring stack",
    SequencerState.TRACING_INSTALL: "Step 4: Distributed tracing",
}

STATUS_MARKERS = {
    InstallStatus.INSTALLED: "✓",
    InstallStatus.ALREADY_PRESENT: "✓",
    InstallStatus.PARTIAL_FAILURE: "⚠",
    InstallStatus.FAILED: "✗",
}


def _on_state(state: SequencerState, spec: ComponentSpec | None) -> None:
    header = STATE_HEADERS.get(state)
    if header:
        click.echo(f"\n📋 {header}\n")


def _on_outcome(outcome: InstallOutcome) -> None:
    marker = STATUS_MARKERS[outcome.status]
    line = f"  {marker} {outcome.component}: {outcome.status.value.replace('_', ' ')}"
    click.echo(line, err=outcome.failed)
    if outcome.failed and outcome.detail:
        click.echo(f"    {outcome.detail}", err=True)


def _print_summary(result: SetupResult, config: BootstrapConfig) -> None:
    if result.state == SequencerState.ABORTED:
        error = result.error
        click.echo(f"\n✗ Setup aborted: {error.render() if error else 'unknown error'}", err=True)
        return

    if result.warnings:
        click.echo("\n⚠ Completed with warnings:")
        for warning in result.warnings:
            click.echo(f"  ⚠ {warning}")

    click.echo("\n" + "=" * 50)
    click.echo("✓ Setup complete!")
    click.echo("")
    specs = {spec.name: spec for spec in build_component_specs(config, monitoring=True)}
    for outcome in result.outcomes:
        if outcome.failed:
            continue
        for hostname in specs[outcome.component].hostnames:
            click.echo(f"  https://{hostname}")
    click.echo("\n  Verify:  macmagik verify")
    click.echo("  Cleanup: macmagik cleanup")
    click.echo("=" * 50 + "\n")


@click.command()
@click.option(
    "--no-monitoring",
    is_flag=True,
    help="Skip the monitoring (Prometheus/Grafana) and tracing (Jaeger) stacks",
)
@click.pass_context
def setup(ctx: click.Context, no_monitoring: bool) -> None:
    """Set up ingress, TLS and observability on the local cluster.

    Examples:

        # Full setup
        macmagik setup

        # Ingress and certificate only
        macmagik setup --no-monitoring
    """
    config = get_config(ctx)
    tools = get_tools(ctx)

    click.echo("\n🚀 macmagik setup")
    sequencer = Sequencer(config, tools, on_state=_on_state, on_outcome=_on_outcome)
    monitoring = False if no_monitoring else None
    result = sequencer.run(monitoring=monitoring)

    _print_summary(result, config)
    if result.exit_code:
        sys.exit(result.exit_code)
