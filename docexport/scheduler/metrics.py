"""Metrics collection for the batch scheduler."""

from dataclasses import dataclass
from typing import ClassVar

from docexport.store.models import ProcessingResult, ProcessingStatus


@dataclass
class SchedulerMetrics:
    """Metrics for scheduler runs and ticks.

    Attributes:
        runs_started_total: Runs that persisted a run state.
        runs_completed_total: Runs finalized with a summary.
        runs_cancelled_total: Runs cancelled.
        runs_aborted_total: Start attempts aborted before a run state existed.
        ticks_total: Tick invocations.
        ticks_ignored_total: Ticks that were no-ops.
        chunks_processed_total: Chunks processed.
        items_success_total: Items exported.
        items_fail_total: Items failed.
        items_skipped_total: Items skipped as unchanged.
        chunk_duration_ms: Cumulative chunk duration in milliseconds.
    """

    runs_started_total: int = 0
    runs_completed_total: int = 0
    runs_cancelled_total: int = 0
    runs_aborted_total: int = 0
    ticks_total: int = 0
    ticks_ignored_total: int = 0
    chunks_processed_total: int = 0
    items_success_total: int = 0
    items_fail_total: int = 0
    items_skipped_total: int = 0
    chunk_duration_ms: float = 0.0

    _instance: ClassVar["SchedulerMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "SchedulerMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_chunk(self, results: list[ProcessingResult], duration_ms: float) -> None:
        """Record a processed chunk.

        Args:
            results: Results of the chunk.
            duration_ms: Time spent on the chunk.
        """
        self.chunks_processed_total += 1
        self.chunk_duration_ms += duration_ms
        for result in results:
            if result.status == ProcessingStatus.SUCCESS:
                self.items_success_total += 1
            elif result.status == ProcessingStatus.FAIL:
                self.items_fail_total += 1
            else:
                self.items_skipped_total += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "runs_started_total": self.runs_started_total,
            "runs_completed_total": self.runs_completed_total,
            "runs_cancelled_total": self.runs_cancelled_total,
            "runs_aborted_total": self.runs_aborted_total,
            "ticks_total": self.ticks_total,
            "ticks_ignored_total": self.ticks_ignored_total,
            "chunks_processed_total": self.chunks_processed_total,
            "items_success_total": self.items_success_total,
            "items_fail_total": self.items_fail_total,
            "items_skipped_total": self.items_skipped_total,
            "chunk_duration_ms": self.chunk_duration_ms,
        }
