"""Report generation utilities for fleet execution reports."""

from concord.core.models import AgentResult, FleetExecutionReport, TierReport
from concord.llm.prompts import render_output


class FleetReporter:
    """Generates Markdown reports from fleet execution reports."""

    def generate_summary(self, report: FleetExecutionReport) -> str:
        """Generate a Markdown summary of a fleet run."""
        lines = [
            f"# Fleet Report: {report.fleet_name}",
            "",
            f"**Run ID:** {report.run_id}",
            f"**Status:** {report.status.value}",
            f"**Duration:** {report.duration_seconds:.1f}s",
            f"**Invocations:** {report.successful_invocations}/{report.total_invocations} succeeded",
            "",
        ]

        if report.error:
            lines.append("## Error")
            lines.append(report.error)
            lines.append("")

        if report.degraded_tiers:
            tiers = ", ".join(str(t) for t in report.degraded_tiers)
            lines.append(f"**Degraded tiers:** {tiers}")
            lines.append("")

        lines.append("## Answer")
        if report.synthesis_agent:
            lines.append(f"_Synthesized by {report.synthesis_agent}_")
            lines.append("")
        lines.append(render_output(report.answer))
        lines.append("")

        if report.final_consensus:
            final = report.final_consensus
            lines.append(
                f"Final consensus ({final.algorithm.value}): confidence "
                f"{final.confidence:.2f}, reached: {'yes' if final.reached else 'no'}"
            )
            lines.append("")

        return "\n".join(lines)

    def generate_tier_section(self, tier: TierReport) -> str:
        """Generate the Markdown section for one tier."""
        consensus = tier.consensus
        lines = [
            f"## Tier {tier.tier}: {tier.status.value}",
            "",
            f"Algorithm: {consensus.algorithm.value}",
            f"Confidence: {consensus.confidence:.2f}",
            f"Reached: {'yes' if consensus.reached else 'no'}",
            f"Votes: {consensus.votes} (min {consensus.min_votes})",
        ]

        if consensus.escalation:
            lines.append(f"Escalation: {consensus.escalation.value}")
        if tier.error:
            lines.append(f"Error: {tier.error}")

        lines.append("")
        lines.append("### Verdict")
        lines.append("no data" if consensus.no_data else render_output(consensus.result))
        lines.append("")

        if consensus.dissenters:
            lines.append(f"Dissenters: {', '.join(consensus.dissenters)}")
            lines.append("")

        lines.append("### Agents")
        for result in tier.results:
            lines.append(self._format_agent_result(result))

        return "\n".join(lines)

    def _format_agent_result(self, result: AgentResult) -> str:
        if result.succeeded:
            output = render_output(result.output).replace("\n", " ")
            if len(output) > 200:
                output = output[:200] + "..."
            return f"- **{result.agent_name}** (weight {result.weight:g}, {result.latency_ms:.0f}ms): {output}"
        kind = result.error_kind.value if result.error_kind else "error"
        return f"- **{result.agent_name}** FAILED [{kind}]: {result.error}"

    def generate_full_report(self, report: FleetExecutionReport) -> str:
        """Generate a full report with every tier."""
        lines = [self.generate_summary(report), "---", ""]

        for tier in report.tiers:
            lines.append(self.generate_tier_section(tier))
            lines.append("")

        lines.append(f"_Generated: {report.completed_at.isoformat()}_")
        return "\n".join(lines)
