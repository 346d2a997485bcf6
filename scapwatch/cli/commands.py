"""scapwatch CLI — start monitoring or run a one-shot compliance check."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from scapwatch import __version__
from scapwatch.exceptions import StartupConfigurationError
from scapwatch.logging_config import setup_logging
from scapwatch.main import Application, build_application, run
from scapwatch.profiles import build_battery
from scapwatch.supervisor.triggers import describe_source

app = typer.Typer(help="Continuous SCAP compliance monitoring and remediation")
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"scapwatch {__version__}")
        raise typer.Exit()


# argument count is checked by hand so usage goes to stdout with exit code 1
@app.command(context_settings={"allow_extra_args": True})
def main(
    ctx: typer.Context,
    baseline: Optional[Path] = typer.Argument(
        None, help="SCAP Security Guide datastream (ssg-*-ds.xml)"
    ),
    repo: Optional[Path] = typer.Argument(None, help="Git working tree that archives reports"),
    branch: Optional[str] = typer.Argument(None, help="Branch to push reports to"),
    host_profile: Optional[str] = typer.Option(
        None, "--host-profile", help="ubuntu1804, ubuntu2004 or auto"
    ),
    scan_profile: Optional[str] = typer.Option(
        None, "--profile", help="XCCDF profile to remediate against"
    ),
    check: bool = typer.Option(
        False, "--check", help="Evaluate the poll checks once and exit"
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Watch this host for drift from BASELINE and remediate it.

    With REPO and BRANCH every report is committed and pushed there;
    without them reports stay in the report directory.
    """
    if baseline is None or ctx.args or (repo is not None and not branch):
        typer.echo(ctx.get_usage())
        raise typer.Exit(1)

    setup_logging()
    try:
        application = build_application(
            baseline,
            repo,
            branch,
            host_profile=host_profile,
            scan_profile=scan_profile,
        )
    except StartupConfigurationError as exc:
        console.print(f"[red]✗ {exc.message}[/red]")
        raise typer.Exit(1)

    if check:
        raise typer.Exit(_run_check(application))

    _print_banner(application)
    try:
        run(application)
    except StartupConfigurationError as exc:
        console.print(f"[red]✗ {exc.message}[/red]")
        raise typer.Exit(1)
    console.print("[yellow]scapwatch stopped[/yellow]")


def _run_check(application: Application) -> int:
    """Evaluate the profile's checks once; 0 when compliant, 1 otherwise."""
    battery = build_battery(application.profile, application.inventory)
    verdict = battery.evaluate()

    table = Table(title=f"Compliance checks ({application.profile.name})")
    table.add_column("Condition", style="cyan")
    table.add_column("Result")
    table.add_column("Reason", style="dim")
    for result in verdict.results:
        status = "[green]pass[/green]" if result.passed else "[red]FAIL[/red]"
        table.add_row(result.name, status, result.reason or "")
    console.print(table)

    if verdict.needs_remediation:
        console.print(f"[red]{len(verdict.failures)} check(s) failed[/red]")
        return 1
    console.print("[green]All checks passed[/green]")
    return 0


def _print_banner(application: Application) -> None:
    console.print(f"\n[bold cyan]🛡  scapwatch {__version__}[/bold cyan]\n")
    console.print(f"  Host profile: [green]{application.profile.description}[/green]")
    console.print(f"  Baseline:     {application.baseline}")
    if application.publisher is not None:
        console.print(
            f"  Evidence:     [green]{application.publisher.repo_path}"
            f" ({application.publisher.branch})[/green]"
        )
    else:
        console.print("  Evidence:     [yellow]kept locally (no repository)[/yellow]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Kind")
    table.add_column("Target")
    table.add_column("Filter")
    for loop in application.supervisor.loops:
        info = describe_source(loop.source)
        table.add_row(info["label"], info["kind"], info["target"], info["filter"])
    console.print(table)
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
