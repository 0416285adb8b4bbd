"""Run reporter: result log, status panel and completion summary."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from docexport.reporter.models import RunSummary, StatusPanel
from docexport.reporter.surface import ReportingSurface
from docexport.store.models import ProcessingResult, ResultRow, RunRecord, RunState


logger = structlog.get_logger()


class RunReporter:
    """Writes run progress and outcomes to a reporting surface.

    Surface failures are logged and swallowed: reporting never aborts the
    scheduler. Summaries are still computed and returned when the surface
    is unavailable.
    """

    def __init__(
        self,
        surface: ReportingSurface,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the reporter.

        Args:
            surface: Destination for rows, panels and run records.
            clock: Optional clock returning aware UTC datetimes.
        """
        self._surface = surface
        self._clock = clock or (lambda: datetime.now(UTC))
        self._surface_failures = 0
        self._log = logger.bind(component="reporter")

    @property
    def surface_failures(self) -> int:
        """Number of surface calls that failed."""
        return self._surface_failures

    def _call_surface(self, operation: str, func: Callable[[], None]) -> None:
        try:
            func()
        except Exception as e:  # noqa: BLE001
            self._surface_failures += 1
            self._log.warning(
                "reporter_surface_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )

    def report_started(self, run: RunState) -> None:
        """Reset the status panel for a new run."""
        panel = StatusPanel.build(
            run_id=run.run_id,
            processed=0,
            total=run.total_count,
            latest_results=[],
            updated_at=self._clock(),
            message="Run started",
        )
        self._call_surface(
            "upsert_status_panel", lambda: self._surface.upsert_status_panel(panel)
        )

    def report_chunk(self, run: RunState, chunk_results: list[ProcessingResult]) -> None:
        """Log a processed chunk and refresh the status panel.

        Args:
            run: Run state after the chunk was persisted.
            chunk_results: Results of the chunk, in queue order.
        """
        now = self._clock()
        rows = [
            ResultRow(run_id=run.run_id, logged_at=now, result=result)
            for result in chunk_results
        ]
        self._call_surface("append_rows", lambda: self._surface.append_rows(rows))

        panel = StatusPanel.build(
            run_id=run.run_id,
            processed=run.processed_count,
            total=run.total_count,
            latest_results=chunk_results,
            updated_at=now,
        )
        self._call_surface(
            "upsert_status_panel", lambda: self._surface.upsert_status_panel(panel)
        )

    def report_completion(self, run: RunState) -> RunSummary:
        """Summarize a finished run and record it.

        Args:
            run: The finished run with all accumulated results.

        Returns:
            The run summary.
        """
        finished_at = self._clock()
        summary = RunSummary.from_results(
            run.run_id, run.all_results(), run.started_at, finished_at
        )

        self._log.info(
            "run_summary",
            run_id=summary.run_id,
            total=summary.total,
            success=summary.success,
            fail=summary.fail,
            skipped=summary.skipped,
            duration_seconds=round(summary.duration_seconds, 2),
        )

        record = RunRecord(
            run_id=summary.run_id,
            started_at=summary.started_at,
            finished_at=summary.finished_at,
            success=summary.is_success,
            total=summary.total,
            success_count=summary.success,
            fail_count=summary.fail,
            skipped_count=summary.skipped,
        )
        self._call_surface("record_run", lambda: self._surface.record_run(record))

        panel = StatusPanel.build(
            run_id=run.run_id,
            processed=run.total_count,
            total=run.total_count,
            latest_results=[],
            updated_at=finished_at,
            message=f"Completed: {summary.describe()}",
        )
        self._call_surface(
            "upsert_status_panel", lambda: self._surface.upsert_status_panel(panel)
        )
        return summary

    def report_failure_notice(
        self, run_id: str, started_at: datetime, message: str
    ) -> None:
        """Record a run attempt that aborted before any run state existed.

        Args:
            run_id: ID of the aborted attempt.
            started_at: When the attempt started.
            message: Why it aborted.
        """
        now = self._clock()
        self._log.warning("run_aborted", run_id=run_id, reason=message)

        record = RunRecord(
            run_id=run_id,
            started_at=started_at,
            finished_at=now,
            success=False,
            error_summary=message,
        )
        self._call_surface("record_run", lambda: self._surface.record_run(record))

        panel = StatusPanel.build(
            run_id=run_id,
            processed=0,
            total=0,
            latest_results=[],
            updated_at=now,
            message=f"Aborted: {message}",
        )
        self._call_surface(
            "upsert_status_panel", lambda: self._surface.upsert_status_panel(panel)
        )

    def report_cancelled(self, run: RunState) -> None:
        """Mark the status panel as cancelled; no summary is written."""
        panel = StatusPanel.build(
            run_id=run.run_id,
            processed=run.processed_count,
            total=run.total_count,
            latest_results=[],
            updated_at=self._clock(),
            message="Cancelled",
        )
        self._call_surface(
            "upsert_status_panel", lambda: self._surface.upsert_status_panel(panel)
        )
