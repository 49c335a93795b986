"""Concord CLI application using Typer and Rich."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from concord import __version__
from concord.config import get_settings
from concord.core.exceptions import ConfigurationError

# Initialize CLI app and console
app = typer.Typer(
    name="concord",
    help="Multi-agent fleet CLI - tiered execution with confidence-scored consensus",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]Concord[/bold cyan] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Concord - run agent fleets and reconcile their answers."""
    pass


def _setup_logging(json_logs: bool) -> None:
    from concord.logging import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level, "json" if json_logs else settings.log_format)


@app.command()
def validate(
    fleet_file: Path = typer.Argument(
        ...,
        help="Path to the fleet YAML file",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """
    Validate a fleet file and show its tiers.

    Examples:
        concord validate fleets/rca.yaml
    """
    from concord.agents.loader import FleetLoader
    from concord.output.formatters import ReportFormatter

    _setup_logging(json_logs=False)

    try:
        spec = FleetLoader().load(fleet_file)
    except ConfigurationError as e:
        console.print(f"[red]Invalid fleet:[/red] {e.message}")
        for error in e.details.get("errors", []):
            console.print(f"  - {error}")
        raise typer.Exit(1)

    ReportFormatter(console).display_fleet(spec)
    console.print("\n[green]Fleet is valid.[/green]")


@app.command()
def run(
    fleet_file: Path = typer.Argument(
        ...,
        help="Path to the fleet YAML file",
        exists=True,
        dir_okay=False,
    ),
    task: Optional[str] = typer.Option(
        None,
        "--task",
        "-t",
        help="Task text handed to the first tier",
    ),
    task_file: Optional[Path] = typer.Option(
        None,
        "--task-file",
        "-f",
        help="Read the task text from a file",
        exists=True,
        dir_okay=False,
    ),
    deadline: Optional[float] = typer.Option(
        None,
        "--deadline",
        "-d",
        help="Overall deadline for the run in seconds",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Default per-agent timeout in seconds",
    ),
    export: Optional[str] = typer.Option(
        None,
        "--export",
        "-e",
        help="Export format: json or md",
    ),
    output_file: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path for export",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show every agent's output",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit structured logs as JSON on stderr",
    ),
) -> None:
    """
    Run a fleet against a task.

    Examples:
        concord run fleets/rca.yaml --task "Checkout latency doubled at 14:05"
        concord run fleets/review.yaml -f diff.txt --export md -o review.md
        concord run fleets/rca.yaml -t "..." --deadline 300 --verbose
    """
    settings = get_settings()
    _setup_logging(json_logs)

    if not settings.is_configured:
        console.print(
            "[red]Error:[/red] ANTHROPIC_API_KEY not configured. "
            "Please set it in your .env file or environment."
        )
        raise typer.Exit(1)

    if task_file is not None:
        task = task_file.read_text(encoding="utf-8")
    if not task or not task.strip():
        console.print("[red]Error:[/red] Provide a task with --task or --task-file.")
        raise typer.Exit(1)

    from rich.progress import Progress, SpinnerColumn, TextColumn
    from concord.agents.base import ClaudeAgentInvoker
    from concord.agents.loader import FleetLoader
    from concord.analysis.orchestrator import FleetOrchestrator
    from concord.analysis.tier_executor import TierExecutor
    from concord.output.exporters import export_report
    from concord.output.formatters import ReportFormatter

    try:
        spec = FleetLoader(settings).load(fleet_file)
    except ConfigurationError as e:
        console.print(f"[red]Invalid fleet:[/red] {e.message}")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold]Fleet:[/bold] {spec.name}\n"
            f"[bold]Tiers:[/bold] {', '.join(str(t) for t in spec.tiers())}\n"
            f"[bold]Agents:[/bold] {len(spec.agents)}",
            title="Fleet Run",
            border_style="blue",
        )
    )

    invoker = ClaudeAgentInvoker(settings, manager_synthesizes=spec.synthesizes)
    executor = TierExecutor(invoker, settings=settings, default_timeout=timeout)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress_task = progress.add_task("Initializing...", total=None)

        orchestrator = FleetOrchestrator(
            spec,
            invoker,
            settings=settings,
            executor=executor,
            progress_callback=lambda msg: progress.update(progress_task, description=msg),
        )

        try:
            report = asyncio.run(orchestrator.run(task, deadline_seconds=deadline))
        except Exception as e:
            console.print(f"\n[red]Error during fleet run:[/red] {e}")
            raise typer.Exit(1)

    formatter = ReportFormatter(console)
    formatter.display_report(report, verbose=verbose)

    if export and output_file:
        try:
            export_report(report, output_file, format=export)
            console.print(f"\n[green]Report exported to {output_file}[/green]")
        except (OSError, ValueError) as e:
            console.print(f"\n[red]Export error:[/red] {e}")

    if not report.succeeded:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
