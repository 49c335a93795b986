"""Output formatting and export utilities."""

from concord.output.exporters import JSONExporter, MarkdownExporter, export_report
from concord.output.formatters import ReportFormatter

__all__ = [
    "JSONExporter",
    "MarkdownExporter",
    "ReportFormatter",
    "export_report",
]
