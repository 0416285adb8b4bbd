"""Run reporting: bounded result log, status panel and run summaries."""

from docexport.reporter.models import (
    RunSummary,
    StatusPanel,
    compute_percent,
    format_duration,
    render_progress_bar,
)
from docexport.reporter.reporter import RunReporter
from docexport.reporter.surface import ReportingSurface, SqliteReportingSurface


__all__ = [
    # Models
    "RunSummary",
    "StatusPanel",
    "compute_percent",
    "format_duration",
    "render_progress_bar",
    # Reporter
    "RunReporter",
    # Surfaces
    "ReportingSurface",
    "SqliteReportingSurface",
]
