"""SQLite schema migrations for the progress store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from docexport.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
    """

    version: int
    description: str
    up_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Key/value progress table and run history",
        up_sql="""
-- Key/value table: run state, item state, lease, continuation
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Runs table: one row per completed or aborted run
CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    success INTEGER,
    total INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER NOT NULL DEFAULT 0,
    fail_count INTEGER NOT NULL DEFAULT 0,
    skipped_count INTEGER NOT NULL DEFAULT 0,
    error_summary TEXT
);
CREATE INDEX IF NOT EXISTS idx_runs_started_at ON runs(started_at);
""",
    ),
    Migration(
        version=2,
        description="Bounded result log and status panel",
        up_sql="""
-- Result log: FIFO ring of processing results, evicted by row count
CREATE TABLE IF NOT EXISTS result_log (
    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    logged_at TEXT NOT NULL,
    result_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_result_log_run_id ON result_log(run_id);

-- Status panel: single row with the latest progress snapshot
CREATE TABLE IF NOT EXISTS status_panel (
    panel_id INTEGER PRIMARY KEY CHECK (panel_id = 1),
    payload_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations."""

    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.executescript(self.VERSION_TABLE_SQL)

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.debug("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            try:
                self._conn.executescript(migration.up_sql)
                self._conn.execute(
                    """
                    INSERT INTO schema_version (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (
                        migration.version,
                        datetime.now(UTC).isoformat(),
                        migration.description,
                    ),
                )
                if self._conn.in_transaction:
                    self._conn.commit()
                applied.append(migration.version)
                self._log.info("migration_applied", version=migration.version)

            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                if self._conn.in_transaction:
                    self._conn.rollback()
                raise MigrationError(migration.version, str(e)) from e

        return applied
