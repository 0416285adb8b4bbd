"""Unit tests for run reporting."""

import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from docexport.reporter.models import (
    PROGRESS_BAR_WIDTH,
    RunSummary,
    StatusPanel,
    compute_percent,
    format_duration,
    render_progress_bar,
)
from docexport.reporter.reporter import RunReporter
from docexport.reporter.surface import ReportingSurface, SqliteReportingSurface
from docexport.store.models import ProcessingResult, QueueEntry, RunState
from docexport.store.store import StateStore
from tests.helpers.fakes import FailingSurface, RecordingSurface, make_item
from tests.helpers.time import FIXED_NOW, FakeClock


def _results() -> list[ProcessingResult]:
    return [
        ProcessingResult.success(make_item("a"), "Created", "a.md"),
        ProcessingResult.success(make_item("b"), "Updated", "b.md"),
        ProcessingResult.failure(make_item("c"), "boom"),
        ProcessingResult.skipped(make_item("d"), "d.md"),
    ]


def _run(processed: int = 2, total: int = 4) -> RunState:
    results = _results()
    return RunState(
        run_id="run-1",
        chunk_size=2,
        cursor=processed // 2,
        total_count=total,
        processed_count=processed,
        item_queue=tuple(QueueEntry(item=make_item(r.item_id)) for r in results),
        started_at=FIXED_NOW,
        accumulated_results={0: tuple(results[:2]), 1: tuple(results[2:])},
    )


class TestProgressHelpers:
    """Tests for percent, progress bar and duration formatting."""

    @pytest.mark.parametrize(
        ("processed", "total", "expected"),
        [(0, 10, 0), (5, 10, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (10, 10, 100)],
    )
    def test_compute_percent(self, processed: int, total: int, expected: int) -> None:
        """Test percentages round half up."""
        assert compute_percent(processed, total) == expected

    def test_percent_of_empty_total(self) -> None:
        """Test an empty run is at zero percent."""
        assert compute_percent(0, 0) == 0

    def test_progress_bar(self) -> None:
        """Test the bar has a fixed width of filled and empty cells."""
        bar = render_progress_bar(5, 10)
        assert len(bar) == PROGRESS_BAR_WIDTH
        assert bar == "▓" * 10 + "░" * 10

    def test_progress_bar_bounds(self) -> None:
        """Test the bar is empty at zero and full at completion."""
        assert render_progress_bar(0, 10) == "░" * PROGRESS_BAR_WIDTH
        assert render_progress_bar(10, 10) == "▓" * PROGRESS_BAR_WIDTH
        assert render_progress_bar(0, 0) == "░" * PROGRESS_BAR_WIDTH

    def test_format_duration(self) -> None:
        """Test durations render as minutes and seconds."""
        assert format_duration(0) == "0m 0s"
        assert format_duration(125.9) == "2m 5s"


class TestRunSummary:
    """Tests for RunSummary."""

    def test_from_results(self) -> None:
        """Test counts per status and elapsed time."""
        summary = RunSummary.from_results(
            "run-1", _results(), FIXED_NOW, FIXED_NOW + timedelta(seconds=90)
        )

        assert summary.total == 4
        assert summary.success == 2
        assert summary.fail == 1
        assert summary.skipped == 1
        assert summary.duration_seconds == 90
        assert not summary.is_success
        assert summary.describe() == "4 items: 2 exported, 1 skipped, 1 failed in 1m 30s"


class TestRunReporter:
    """Tests for RunReporter."""

    @pytest.fixture
    def surface(self) -> RecordingSurface:
        """Create a recording surface."""
        return RecordingSurface()

    @pytest.fixture
    def reporter(self, surface: RecordingSurface) -> RunReporter:
        """Create a reporter with a fixed clock."""
        return RunReporter(surface, clock=FakeClock())

    def test_recording_surface_satisfies_protocol(self) -> None:
        """Test the test double matches the surface protocol."""
        assert isinstance(RecordingSurface(), ReportingSurface)

    def test_report_chunk(self, reporter: RunReporter, surface: RecordingSurface) -> None:
        """Test a chunk appends its rows and refreshes the panel."""
        run = _run(processed=2)
        reporter.report_chunk(run, _results()[:2])

        assert [row.result.item_id for row in surface.rows] == ["a", "b"]
        assert all(row.run_id == "run-1" for row in surface.rows)
        panel = surface.panels[-1]
        assert panel.processed == 2
        assert panel.total == 4
        assert panel.percent == 50
        assert [r.item_id for r in panel.latest_results] == ["a", "b"]

    def test_report_completion(
        self, reporter: RunReporter, surface: RecordingSurface
    ) -> None:
        """Test completion records a run and a final panel."""
        summary = reporter.report_completion(_run(processed=4))

        assert summary.total == 4
        record = surface.runs[0]
        assert record.success is False
        assert record.fail_count == 1
        assert record.skipped_count == 1
        assert surface.panels[-1].percent == 100
        assert surface.panels[-1].message == f"Completed: {summary.describe()}"

    def test_report_failure_notice(
        self, reporter: RunReporter, surface: RecordingSurface
    ) -> None:
        """Test an aborted start is recorded with its reason."""
        reporter.report_failure_notice("run-9", FIXED_NOW, "auth failed")

        assert surface.runs[0].run_id == "run-9"
        assert surface.runs[0].success is False
        assert surface.runs[0].error_summary == "auth failed"
        assert surface.panels[-1].message == "Aborted: auth failed"

    def test_report_cancelled(
        self, reporter: RunReporter, surface: RecordingSurface
    ) -> None:
        """Test cancellation only touches the panel."""
        reporter.report_cancelled(_run(processed=2))

        assert surface.runs == []
        assert surface.rows == []
        assert surface.panels[-1].message == "Cancelled"

    def test_surface_failure_is_swallowed(self) -> None:
        """Test a broken surface never raises and still yields a summary."""
        reporter = RunReporter(FailingSurface(), clock=FakeClock())

        reporter.report_started(_run(processed=0))
        reporter.report_chunk(_run(), _results()[:2])
        summary = reporter.report_completion(_run(processed=4))

        assert summary.total == 4
        assert reporter.surface_failures == 5


class TestSqliteReportingSurface:
    """Tests for the SQLite-backed reporting surface."""

    @pytest.fixture
    def store(self) -> Generator[StateStore]:
        """Create a connected state store."""
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "report.db")
            store.connect()
            yield store
            store.close()

    def test_panel_round_trip(self, store: StateStore) -> None:
        """Test the panel reads back as written."""
        surface = SqliteReportingSurface(store)
        panel = StatusPanel.build(
            run_id="run-1",
            processed=3,
            total=4,
            latest_results=_results()[:1],
            updated_at=FIXED_NOW,
        )
        surface.upsert_status_panel(panel)

        assert surface.get_status_panel() == panel

    def test_rows_bounded(self, store: StateStore) -> None:
        """Test the surface enforces its row ceiling."""
        surface = SqliteReportingSurface(store, max_rows=3)
        reporter = RunReporter(surface, clock=FakeClock())
        reporter.report_chunk(_run(), _results())
        reporter.report_chunk(_run(), _results()[:1])

        rows = surface.get_result_rows()
        assert [row.result.item_id for row in rows] == ["c", "d", "a"]

    def test_run_history(self, store: StateStore) -> None:
        """Test completion is visible in run history."""
        surface = SqliteReportingSurface(store)
        RunReporter(surface, clock=FakeClock()).report_completion(_run(processed=4))

        runs = surface.get_recent_runs()
        assert len(runs) == 1
        assert runs[0].total == 4
