"""Export utilities for fleet execution reports."""

from pathlib import Path

from concord.analysis.reporter import FleetReporter
from concord.core.models import FleetExecutionReport


class JSONExporter:
    """Export reports to JSON format."""

    def export(self, report: FleetExecutionReport, file_path: str | Path) -> None:
        """Export a report to a JSON file."""
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(self.to_string(report))

    def to_string(self, report: FleetExecutionReport) -> str:
        """Convert a report to a JSON string."""
        return report.model_dump_json(indent=2)


class MarkdownExporter:
    """Export reports to Markdown format."""

    def __init__(self) -> None:
        self._reporter = FleetReporter()

    def export(self, report: FleetExecutionReport, file_path: str | Path) -> None:
        """Export a report to a Markdown file."""
        content = self._reporter.generate_full_report(report)

        with open(file_path, "w", encoding="utf-8") as f:
            f.write(content)

    def to_string(self, report: FleetExecutionReport) -> str:
        """Convert a report to a Markdown string."""
        return self._reporter.generate_full_report(report)


def export_report(
    report: FleetExecutionReport,
    file_path: str | Path,
    format: str = "json",
) -> None:
    """
    Export a fleet report to file.

    Args:
        report: Report to export
        file_path: Output file path
        format: Export format ('json', 'md')
    """
    format = format.lower()

    if format == "json":
        JSONExporter().export(report, file_path)
    elif format in ("md", "markdown"):
        MarkdownExporter().export(report, file_path)
    else:
        raise ValueError(f"Unknown export format: {format}")
