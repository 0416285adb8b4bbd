"""SQLite state store implementation."""

import sqlite3
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from docexport.store.errors import ConnectionError as StoreConnectionError
from docexport.store.metrics import StoreMetrics, TransactionContext
from docexport.store.migrations import CURRENT_VERSION, MigrationManager
from docexport.store.models import ProcessingResult, ResultRow, RunRecord


logger = structlog.get_logger()


class StateStore:
    """SQLite store for export progress, result log and run history.

    Implements the ``PersistentStore`` key/value protocol on the ``kv``
    table. Every write commits immediately, so each call is a durable
    recovery point. Uses WAL mode and supports schema migrations.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the state store.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._conn: sqlite3.Connection | None = None
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._log.debug("connecting_to_database")

        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE
        self._conn = sqlite3.connect(str(self._db_path), isolation_level=None)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        migration_mgr = MigrationManager(self._conn)
        old_version = migration_mgr.get_current_version()
        applied = migration_mgr.apply_migrations()

        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._log.debug("database_closed")

    def __enter__(self) -> "StateStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[TransactionContext]:
        """Context manager for transactions with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            Transaction context with timing information.
        """
        conn = self._ensure_connected()
        tx_id = str(uuid.uuid4())[:8]
        start_ns = time.perf_counter_ns()
        ctx = TransactionContext(
            tx_id=tx_id, start_time_ns=start_ns, operation=operation
        )

        conn.execute("BEGIN IMMEDIATE")

        try:
            yield ctx
            conn.commit()
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)

            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

        except Exception:
            conn.rollback()
            self._log.error("transaction_failed", tx_id=tx_id, op=operation)
            raise

    # ===== Key/Value =====

    def get(self, key: str) -> str | None:
        """Get the value for a key.

        Args:
            key: The key to look up.

        Returns:
            The stored value, or None if absent.
        """
        conn = self._ensure_connected()
        self._metrics.record_read()
        row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row["value"])

    def set(self, key: str, value: str) -> None:
        """Set the value for a key.

        Args:
            key: The key to write.
            value: The value to store.
        """
        with self._transaction("kv_set") as ctx:
            self._upsert_kv(key, value)
            ctx.add_affected_rows(1)
        self._metrics.record_write()

    def delete(self, key: str) -> None:
        """Delete a key (no-op if absent).

        Args:
            key: The key to delete.
        """
        with self._transaction("kv_delete") as ctx:
            conn = self._ensure_connected()
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            ctx.add_affected_rows(cursor.rowcount)
        self._metrics.record_delete()

    def compare_and_set(
        self, key: str, expected: str | None, new: str | None
    ) -> bool:
        """Replace a value only if it currently equals ``expected``.

        The read and write happen inside one ``BEGIN IMMEDIATE`` transaction,
        so two processes cannot both win the swap.

        Args:
            key: The key to update.
            expected: Expected current value (None means absent).
            new: New value (None deletes the key).

        Returns:
            True if the swap happened.
        """
        with self._transaction("kv_compare_and_set") as ctx:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
            current = None if row is None else str(row["value"])

            if current != expected:
                self._metrics.record_cas_conflict()
                self._log.info("compare_and_set_conflict", key=key)
                return False

            if new is None:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            else:
                self._upsert_kv(key, new)
            ctx.add_affected_rows(1)

        self._metrics.record_write()
        return True

    def _upsert_kv(self, key: str, value: str) -> None:
        """Insert or replace a key inside the current transaction."""
        conn = self._ensure_connected()
        conn.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now(UTC).isoformat()),
        )

    # ===== Result Log =====

    def append_result_rows(self, rows: list[ResultRow], max_rows: int) -> int:
        """Append rows to the result log, evicting the oldest beyond a ceiling.

        Eviction removes whole rows in insertion order. If a single append
        exceeds the ceiling, only its newest ``max_rows`` rows survive.

        Args:
            rows: Rows to append.
            max_rows: Maximum number of rows to retain.

        Returns:
            Number of rows evicted.
        """
        if not rows:
            return 0

        with self._transaction("append_result_rows") as ctx:
            conn = self._ensure_connected()
            conn.executemany(
                """
                INSERT INTO result_log (run_id, logged_at, result_json)
                VALUES (?, ?, ?)
                """,
                [
                    (row.run_id, row.logged_at.isoformat(), row.result.model_dump_json())
                    for row in rows
                ],
            )
            ctx.add_affected_rows(len(rows))

            cursor = conn.execute(
                """
                DELETE FROM result_log WHERE row_id NOT IN (
                    SELECT row_id FROM result_log ORDER BY row_id DESC LIMIT ?
                )
                """,
                (max_rows,),
            )
            evicted = max(cursor.rowcount, 0)
            ctx.add_affected_rows(evicted)

        self._metrics.record_result_rows(len(rows), evicted)
        if evicted:
            self._log.info("result_rows_evicted", count=evicted, max_rows=max_rows)
        return evicted

    def get_result_rows(
        self, limit: int = 100, run_id: str | None = None
    ) -> list[ResultRow]:
        """Get the newest result log rows, oldest first.

        Args:
            limit: Maximum number of rows.
            run_id: Optional run filter.

        Returns:
            List of rows in insertion order.
        """
        conn = self._ensure_connected()
        if run_id is None:
            cursor = conn.execute(
                "SELECT * FROM result_log ORDER BY row_id DESC LIMIT ?", (limit,)
            )
        else:
            cursor = conn.execute(
                """
                SELECT * FROM result_log WHERE run_id = ?
                ORDER BY row_id DESC LIMIT ?
                """,
                (run_id, limit),
            )

        rows = [
            ResultRow(
                row_id=row["row_id"],
                run_id=row["run_id"],
                logged_at=datetime.fromisoformat(row["logged_at"]),
                result=ProcessingResult.model_validate_json(row["result_json"]),
            )
            for row in cursor.fetchall()
        ]
        rows.reverse()
        return rows

    def count_result_rows(self) -> int:
        """Get the number of rows in the result log."""
        conn = self._ensure_connected()
        return int(conn.execute("SELECT COUNT(*) FROM result_log").fetchone()[0])

    # ===== Status Panel =====

    def upsert_status_panel(self, payload_json: str) -> None:
        """Replace the status panel payload.

        Args:
            payload_json: Serialized panel.
        """
        with self._transaction("upsert_status_panel") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO status_panel (panel_id, payload_json, updated_at)
                VALUES (1, ?, ?)
                ON CONFLICT(panel_id) DO UPDATE SET
                    payload_json = excluded.payload_json,
                    updated_at = excluded.updated_at
                """,
                (payload_json, datetime.now(UTC).isoformat()),
            )
            ctx.add_affected_rows(1)

    def get_status_panel(self) -> str | None:
        """Get the status panel payload, or None if never written."""
        conn = self._ensure_connected()
        row = conn.execute(
            "SELECT payload_json FROM status_panel WHERE panel_id = 1"
        ).fetchone()
        return None if row is None else str(row["payload_json"])

    # ===== Run History =====

    def record_run(self, record: RunRecord) -> None:
        """Insert or replace a run history record.

        Args:
            record: The run record.
        """
        with self._transaction("record_run") as ctx:
            conn = self._ensure_connected()
            conn.execute(
                """
                INSERT INTO runs (
                    run_id, started_at, finished_at, success, total,
                    success_count, fail_count, skipped_count, error_summary
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(run_id) DO UPDATE SET
                    finished_at = excluded.finished_at,
                    success = excluded.success,
                    total = excluded.total,
                    success_count = excluded.success_count,
                    fail_count = excluded.fail_count,
                    skipped_count = excluded.skipped_count,
                    error_summary = excluded.error_summary
                """,
                (
                    record.run_id,
                    record.started_at.isoformat(),
                    record.finished_at.isoformat() if record.finished_at else None,
                    None if record.success is None else int(record.success),
                    record.total,
                    record.success_count,
                    record.fail_count,
                    record.skipped_count,
                    record.error_summary,
                ),
            )
            ctx.add_affected_rows(1)

    def get_recent_runs(self, limit: int = 10) -> list[RunRecord]:
        """Get the most recent run records, newest first.

        Args:
            limit: Maximum number of records.

        Returns:
            List of run records.
        """
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT * FROM runs ORDER BY started_at DESC LIMIT ?", (limit,)
        )
        return [self._row_to_run(row) for row in cursor.fetchall()]

    def _row_to_run(self, row: sqlite3.Row) -> RunRecord:
        """Convert a database row to a RunRecord."""
        return RunRecord(
            run_id=row["run_id"],
            started_at=datetime.fromisoformat(row["started_at"]),
            finished_at=(
                datetime.fromisoformat(row["finished_at"])
                if row["finished_at"]
                else None
            ),
            success=bool(row["success"]) if row["success"] is not None else None,
            total=row["total"],
            success_count=row["success_count"],
            fail_count=row["fail_count"],
            skipped_count=row["skipped_count"],
            error_summary=row["error_summary"],
        )

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        conn = self._ensure_connected()

        stats: dict[str, int] = {}
        for table in ("kv", "runs", "result_log", "status_panel"):
            cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = cursor.fetchone()[0]

        return stats

    def get_schema_version(self) -> int:
        """Get current schema version."""
        conn = self._ensure_connected()
        return MigrationManager(conn).get_current_version()
