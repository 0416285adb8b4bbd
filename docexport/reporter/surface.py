"""Reporting surfaces: where result rows, panels and run records go."""

from typing import Protocol, runtime_checkable

from docexport.reporter.models import StatusPanel
from docexport.store.models import ResultRow, RunRecord
from docexport.store.store import StateStore


@runtime_checkable
class ReportingSurface(Protocol):
    """Destination for run reporting."""

    def append_rows(self, rows: list[ResultRow]) -> None:
        """Append result rows to the durable, bounded log."""
        ...

    def upsert_status_panel(self, panel: StatusPanel) -> None:
        """Replace the status panel."""
        ...

    def record_run(self, record: RunRecord) -> None:
        """Record a run summary or failure notice in the run history."""
        ...


class SqliteReportingSurface:
    """Reporting surface backed by the SQLite state store."""

    def __init__(self, store: StateStore, max_rows: int = 1000) -> None:
        """Initialize the surface.

        Args:
            store: Connected state store.
            max_rows: Result log row ceiling.
        """
        self._store = store
        self._max_rows = max_rows

    def append_rows(self, rows: list[ResultRow]) -> None:
        """Append rows, evicting the oldest beyond the ceiling."""
        self._store.append_result_rows(rows, self._max_rows)

    def upsert_status_panel(self, panel: StatusPanel) -> None:
        """Replace the status panel."""
        self._store.upsert_status_panel(panel.model_dump_json())

    def record_run(self, record: RunRecord) -> None:
        """Record a run in the history table."""
        self._store.record_run(record)

    def get_status_panel(self) -> StatusPanel | None:
        """Read back the status panel, if any."""
        payload = self._store.get_status_panel()
        if payload is None:
            return None
        return StatusPanel.model_validate_json(payload)

    def get_result_rows(self, limit: int = 100) -> list[ResultRow]:
        """Read back the newest result rows, oldest first."""
        return self._store.get_result_rows(limit=limit)

    def get_recent_runs(self, limit: int = 10) -> list[RunRecord]:
        """Read back the newest run records."""
        return self._store.get_recent_runs(limit=limit)
