"""Rich console formatters for displaying fleet reports."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from concord.core.enums import FleetStatus, TierStatus
from concord.core.fleet_models import FleetSpec
from concord.core.models import FleetExecutionReport, TierReport
from concord.llm.prompts import render_output


class ReportFormatter:
    """Formats fleet specs and execution reports for Rich console output."""

    STATUS_COLORS = {
        TierStatus.COMPLETED: "green",
        TierStatus.DEGRADED: "yellow",
        TierStatus.NO_DATA: "bold red",
        TierStatus.AWAITING_REVIEW: "cyan",
        TierStatus.FAILED: "red",
    }

    FLEET_COLORS = {
        FleetStatus.DONE: "green",
        FleetStatus.FAILED: "red",
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def display_report(self, report: FleetExecutionReport, verbose: bool = False) -> None:
        """Display a complete fleet report."""
        color = self.FLEET_COLORS.get(report.status, "yellow")

        self.console.print()
        self.console.print(
            Panel(
                f"[bold]Fleet:[/bold] {report.fleet_name}\n"
                f"Status: [{color}]{report.status.value}[/{color}]\n"
                f"Invocations: {report.successful_invocations}/{report.total_invocations} succeeded | "
                f"Time: {report.duration_seconds:.1f}s",
                title="Fleet Run",
                border_style=color,
            )
        )

        self._display_tier_table(report)

        if verbose:
            for tier in report.tiers:
                self._display_agent_table(tier)

        if report.error:
            self.console.print(f"\n[red]Error:[/red] {escape(report.error)}")

        if report.answer is not None:
            title = "Answer"
            if report.synthesis_agent:
                title = f"Answer (synthesized by {report.synthesis_agent})"
            elif report.final_consensus:
                title = f"Answer (confidence {report.final_consensus.confidence:.2f})"
            self.console.print()
            self.console.print(Panel(escape(render_output(report.answer)), title=title, border_style="blue"))

    def _display_tier_table(self, report: FleetExecutionReport) -> None:
        """Display one row per tier."""
        table = Table(title="Tiers")
        table.add_column("Tier", justify="right", style="cyan")
        table.add_column("Algorithm")
        table.add_column("Status", justify="center")
        table.add_column("Confidence", justify="right")
        table.add_column("Votes", justify="right")
        table.add_column("Failures", justify="right")
        table.add_column("Verdict", max_width=50)

        for tier in report.tiers:
            color = self.STATUS_COLORS.get(tier.status, "white")
            consensus = tier.consensus
            verdict = "no data" if consensus.no_data else render_output(consensus.result)
            if len(verdict) > 80:
                verdict = verdict[:80] + "..."

            table.add_row(
                str(tier.tier),
                consensus.algorithm.value,
                f"[{color}]{tier.status.value}[/{color}]",
                f"{consensus.confidence:.2f}",
                str(consensus.votes),
                str(tier.failure_count),
                escape(verdict),
            )

        self.console.print(table)

    def _display_agent_table(self, tier: TierReport) -> None:
        """Display every agent result of a tier."""
        table = Table(title=f"Tier {tier.tier} Agents")
        table.add_column("Agent", style="cyan", no_wrap=True)
        table.add_column("Weight", justify="right")
        table.add_column("Latency", justify="right")
        table.add_column("Output", max_width=60)

        for result in tier.results:
            if result.succeeded:
                output = render_output(result.output)
                if len(output) > 100:
                    output = output[:100] + "..."
                output = escape(output)
            else:
                kind = result.error_kind.value if result.error_kind else "error"
                output = f"[red]{kind}: {escape(result.error or '')}[/red]"

            table.add_row(
                result.agent_name,
                f"{result.weight:g}",
                f"{result.latency_ms:.0f}ms",
                output,
            )

        self.console.print(table)

    def display_fleet(self, spec: FleetSpec) -> None:
        """Display the structure of a fleet."""
        coordination = spec.coordination

        self.console.print(
            Panel(
                f"[bold]{spec.name}[/bold] ({spec.api_version})\n"
                f"Tiers: {', '.join(str(t) for t in spec.tiers())}\n"
                f"Final aggregation: {coordination.final_aggregation.value}\n"
                f"Pass all results: {'yes' if coordination.pass_all_results else 'no'}",
                title="Fleet",
                border_style="blue",
            )
        )

        table = Table(title="Agents")
        table.add_column("Tier", justify="right", style="cyan")
        table.add_column("Agent")
        table.add_column("Role")
        table.add_column("Weight", justify="right")
        table.add_column("Algorithm")
        table.add_column("Model")

        for tier in spec.tiers():
            algorithm = coordination.consensus_for(tier).algorithm.value
            for agent in spec.agents_in_tier(tier):
                table.add_row(
                    str(tier),
                    agent.name,
                    agent.role.value,
                    f"{spec.weight_of(agent.name):g}",
                    "synthesis" if agent.is_manager and spec.synthesizes else algorithm,
                    agent.model or "-",
                )

        self.console.print(table)
