"""Integration tests for the SQLite state store."""

import sqlite3
import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from docexport.store.errors import ConnectionError as StoreConnectionError
from docexport.store.kv import PersistentStore
from docexport.store.metrics import StoreMetrics
from docexport.store.migrations import CURRENT_VERSION
from docexport.store.models import ProcessingResult, ResultRow, RunRecord, WorkItem
from docexport.store.store import StateStore
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_state.db"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[StateStore]:
    """Create a connected state store."""
    store = StateStore(temp_db_path)
    store.connect()
    yield store
    store.close()


def _row(run_id: str, item_id: str) -> ResultRow:
    item = WorkItem(id=item_id, title=f"Title {item_id}")
    return ResultRow(
        run_id=run_id,
        logged_at=FIXED_NOW,
        result=ProcessingResult.success(item, "Created", f"{item_id}.md"),
    )


class TestStateStoreConnection:
    """Tests for store connection and setup."""

    def test_connect_creates_database(self, temp_db_path: Path) -> None:
        """Test connecting creates the database file."""
        store = StateStore(temp_db_path)
        assert not temp_db_path.exists()

        store.connect()
        assert temp_db_path.exists()
        store.close()

    def test_connect_creates_parent_dirs(self, temp_db_path: Path) -> None:
        """Test connecting creates parent directories."""
        nested_path = temp_db_path.parent / "subdir" / "state.db"
        store = StateStore(nested_path)
        store.connect()
        assert nested_path.exists()
        store.close()

    def test_context_manager(self, temp_db_path: Path) -> None:
        """Test store works as context manager."""
        with StateStore(temp_db_path) as store:
            assert store.is_connected
            assert store.get_schema_version() == CURRENT_VERSION

        assert not store.is_connected

    def test_operations_require_connection(self, temp_db_path: Path) -> None:
        """Test using a closed store raises a connection error."""
        store = StateStore(temp_db_path)
        with pytest.raises(StoreConnectionError):
            store.get("KEY")

    def test_reconnect_keeps_schema(self, temp_db_path: Path) -> None:
        """Test reconnecting does not re-apply migrations."""
        with StateStore(temp_db_path) as store:
            store.set("KEY", "value")

        with StateStore(temp_db_path) as store:
            assert store.get("KEY") == "value"
            assert store.get_schema_version() == CURRENT_VERSION

    def test_wal_mode_enabled(self, store: StateStore, temp_db_path: Path) -> None:
        """Test the database uses WAL journaling."""
        conn = sqlite3.connect(temp_db_path)
        try:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            conn.close()
        assert mode == "wal"

    def test_satisfies_persistent_store_protocol(self, store: StateStore) -> None:
        """Test the store can back the progress store."""
        assert isinstance(store, PersistentStore)


class TestKeyValue:
    """Tests for key/value operations."""

    def test_get_missing_key(self, store: StateStore) -> None:
        """Test missing keys read as None."""
        assert store.get("MISSING") is None

    def test_set_and_get(self, store: StateStore) -> None:
        """Test a written value reads back."""
        store.set("RUN_ID", "abc")
        assert store.get("RUN_ID") == "abc"

    def test_set_overwrites(self, store: StateStore) -> None:
        """Test writing a key twice keeps the last value."""
        store.set("RUN_CURSOR", "1")
        store.set("RUN_CURSOR", "2")
        assert store.get("RUN_CURSOR") == "2"

    def test_delete(self, store: StateStore) -> None:
        """Test deleting a key."""
        store.set("RUN_ID", "abc")
        store.delete("RUN_ID")
        assert store.get("RUN_ID") is None

    def test_delete_missing_is_noop(self, store: StateStore) -> None:
        """Test deleting an absent key does not fail."""
        store.delete("MISSING")
        assert store.get("MISSING") is None

    def test_compare_and_set_from_absent(self, store: StateStore) -> None:
        """Test CAS with expected None creates the key."""
        assert store.compare_and_set("RUN_LEASE", None, "lease-1")
        assert store.get("RUN_LEASE") == "lease-1"

    def test_compare_and_set_conflict(self, store: StateStore) -> None:
        """Test CAS fails when the current value differs."""
        store.set("RUN_LEASE", "lease-1")

        assert not store.compare_and_set("RUN_LEASE", None, "lease-2")
        assert not store.compare_and_set("RUN_LEASE", "other", "lease-2")
        assert store.get("RUN_LEASE") == "lease-1"
        assert StoreMetrics.get_instance().cas_conflicts_total == 2

    def test_compare_and_set_delete(self, store: StateStore) -> None:
        """Test CAS with new None deletes the key."""
        store.set("RUN_LEASE", "lease-1")
        assert store.compare_and_set("RUN_LEASE", "lease-1", None)
        assert store.get("RUN_LEASE") is None

    def test_values_visible_to_second_connection(self, temp_db_path: Path) -> None:
        """Test each write is committed immediately."""
        with StateStore(temp_db_path) as writer, StateStore(temp_db_path) as reader:
            writer.set("RUN_IN_PROGRESS", "true")
            assert reader.get("RUN_IN_PROGRESS") == "true"

    def test_metrics_recorded(self, store: StateStore) -> None:
        """Test reads, writes and deletes are counted."""
        store.set("A", "1")
        store.get("A")
        store.delete("A")

        metrics = StoreMetrics.get_instance()
        assert metrics.kv_writes_total == 1
        assert metrics.kv_reads_total == 1
        assert metrics.kv_deletes_total == 1
        assert metrics.db_tx_count >= 2


class TestResultLog:
    """Tests for the bounded result log."""

    def test_append_and_read_in_order(self, store: StateStore) -> None:
        """Test rows read back oldest first."""
        store.append_result_rows([_row("run-1", "a"), _row("run-1", "b")], max_rows=10)

        rows = store.get_result_rows()
        assert [row.result.item_id for row in rows] == ["a", "b"]
        assert all(row.row_id is not None for row in rows)
        assert rows[0].result.artifact_ref == "a.md"

    def test_append_empty_is_noop(self, store: StateStore) -> None:
        """Test appending no rows writes nothing."""
        assert store.append_result_rows([], max_rows=10) == 0
        assert store.count_result_rows() == 0

    def test_evicts_oldest_beyond_ceiling(self, store: StateStore) -> None:
        """Test the oldest rows are evicted whole to stay under the ceiling."""
        store.append_result_rows([_row("run-1", f"i{n}") for n in range(3)], max_rows=4)
        evicted = store.append_result_rows(
            [_row("run-2", f"j{n}") for n in range(3)], max_rows=4
        )

        assert evicted == 2
        assert store.count_result_rows() == 4
        ids = [row.result.item_id for row in store.get_result_rows()]
        assert ids == ["i2", "j0", "j1", "j2"]
        assert StoreMetrics.get_instance().result_rows_evicted_total == 2

    def test_single_append_larger_than_ceiling(self, store: StateStore) -> None:
        """Test only the newest rows of an oversized append survive."""
        store.append_result_rows([_row("run-1", f"i{n}") for n in range(5)], max_rows=2)

        ids = [row.result.item_id for row in store.get_result_rows()]
        assert ids == ["i3", "i4"]

    def test_filter_by_run(self, store: StateStore) -> None:
        """Test reading rows of a single run."""
        store.append_result_rows([_row("run-1", "a"), _row("run-2", "b")], max_rows=10)

        rows = store.get_result_rows(run_id="run-2")
        assert [row.result.item_id for row in rows] == ["b"]

    def test_limit_returns_newest(self, store: StateStore) -> None:
        """Test the limit keeps the newest rows."""
        store.append_result_rows([_row("run-1", f"i{n}") for n in range(5)], max_rows=10)

        rows = store.get_result_rows(limit=2)
        assert [row.result.item_id for row in rows] == ["i3", "i4"]


class TestStatusPanelAndRuns:
    """Tests for the status panel and run history tables."""

    def test_status_panel_absent(self, store: StateStore) -> None:
        """Test the panel is None before the first write."""
        assert store.get_status_panel() is None

    def test_status_panel_replaced(self, store: StateStore) -> None:
        """Test the panel keeps only the latest payload."""
        store.upsert_status_panel('{"processed": 1}')
        store.upsert_status_panel('{"processed": 2}')

        assert store.get_status_panel() == '{"processed": 2}'
        assert store.get_stats()["status_panel"] == 1

    def test_record_and_read_run(self, store: StateStore) -> None:
        """Test a run record round-trips with its counts."""
        record = RunRecord(
            run_id="run-1",
            started_at=FIXED_NOW,
            finished_at=FIXED_NOW + timedelta(minutes=3),
            success=False,
            total=10,
            success_count=9,
            fail_count=1,
        )
        store.record_run(record)

        runs = store.get_recent_runs()
        assert len(runs) == 1
        assert runs[0] == record

    def test_record_run_upserts(self, store: StateStore) -> None:
        """Test recording the same run twice updates it."""
        store.record_run(RunRecord(run_id="run-1", started_at=FIXED_NOW))
        store.record_run(
            RunRecord(
                run_id="run-1",
                started_at=FIXED_NOW,
                finished_at=FIXED_NOW,
                success=True,
                total=1,
                success_count=1,
            )
        )

        runs = store.get_recent_runs()
        assert len(runs) == 1
        assert runs[0].success is True

    def test_recent_runs_newest_first(self, store: StateStore) -> None:
        """Test run history is ordered by start time, newest first."""
        store.record_run(RunRecord(run_id="old", started_at=FIXED_NOW))
        store.record_run(
            RunRecord(run_id="new", started_at=FIXED_NOW + timedelta(hours=1))
        )

        assert [run.run_id for run in store.get_recent_runs()] == ["new", "old"]
        assert [run.run_id for run in store.get_recent_runs(limit=1)] == ["new"]
