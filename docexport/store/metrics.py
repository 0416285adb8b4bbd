"""Metrics collection for the progress store."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for store operations.

    Attributes:
        kv_reads_total: Number of key reads.
        kv_writes_total: Number of key writes.
        kv_deletes_total: Number of key deletes.
        cas_conflicts_total: Compare-and-set calls that lost the race.
        corrupt_values_total: Persisted values that failed to decode.
        result_rows_appended_total: Rows appended to the result log.
        result_rows_evicted_total: Rows evicted from the result log.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
    """

    kv_reads_total: int = 0
    kv_writes_total: int = 0
    kv_deletes_total: int = 0
    cas_conflicts_total: int = 0
    corrupt_values_total: int = 0
    result_rows_appended_total: int = 0
    result_rows_evicted_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_read(self) -> None:
        """Record a key read."""
        self.kv_reads_total += 1

    def record_write(self) -> None:
        """Record a key write."""
        self.kv_writes_total += 1

    def record_delete(self) -> None:
        """Record a key delete."""
        self.kv_deletes_total += 1

    def record_cas_conflict(self) -> None:
        """Record a lost compare-and-set."""
        self.cas_conflicts_total += 1

    def record_corrupt_value(self) -> None:
        """Record a value that could not be decoded."""
        self.corrupt_values_total += 1

    def record_result_rows(self, appended: int, evicted: int) -> None:
        """Record a result log append.

        Args:
            appended: Rows appended.
            evicted: Rows evicted to stay under the ceiling.
        """
        self.result_rows_appended_total += appended
        self.result_rows_evicted_total += evicted

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.db_tx_duration_ms += duration_ms
        self.db_tx_count += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "kv_reads_total": self.kv_reads_total,
            "kv_writes_total": self.kv_writes_total,
            "kv_deletes_total": self.kv_deletes_total,
            "cas_conflicts_total": self.cas_conflicts_total,
            "corrupt_values_total": self.corrupt_values_total,
            "result_rows_appended_total": self.result_rows_appended_total,
            "result_rows_evicted_total": self.result_rows_evicted_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
        }

    @property
    def avg_tx_duration_ms(self) -> float:
        """Calculate average transaction duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
