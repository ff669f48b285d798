"""Verify command - probe what setup installed."""

from __future__ import annotations

import sys

import click
from rich.console import Console
from rich.table import Table

from ..bootstrap import (
    PrerequisiteChecker,
    VerificationProbe,
    VerificationSummary,
)
from ..context import get_config, get_tools, get_transport


def render_summary(summary: VerificationSummary, console: Console) -> None:
    """Print one table row per probe, grouped by component."""
    table = Table(title="macmagik verify")
    table.add_column("Component")
    table.add_column("Check")
    table.add_column("Kind", style="dim")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")

    for group in summary.groups:
        if group.skipped:
            table.add_row(group.title, "-", "-", "[yellow]skipped[/yellow]", group.reason or "")
            continue
        for result in group.results:
            status = "[green]✓ pass[/green]" if result.passed else "[red]✗ fail[/red]"
            table.add_row(group.title, result.name, result.kind, status, result.detail)

    console.print(table)
    style = "green" if summary.ok else "red"
    console.print(f"[{style}]{summary.passed}/{summary.total} checks passed[/{style}]")
    if summary.skipped:
        console.print(f"[dim]Skipped (not installed): {', '.join(summary.skipped)}[/dim]")


@click.command()
@click.pass_context
def verify(ctx: click.Context) -> None:
    """Check pods, keychain trust, hosts entries and HTTPS endpoints.

    Components that are not installed are skipped. Exits 0 only when every
    remaining check passes.
    """
    config = get_config(ctx)
    tools = get_tools(ctx)

    report = PrerequisiteChecker(tools.kubectl).inspect(
        require_helm=False, require_openssl=False, require_macos=False
    )
    if not report.ok:
        for problem in report.problems:
            click.echo(f"✗ {problem}", err=True)
        sys.exit(1)

    summary = VerificationProbe(config, tools, transport=get_transport(ctx)).run()
    render_summary(summary, Console())
    sys.exit(summary.exit_code)
