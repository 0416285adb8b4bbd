"""Data models for the progress store."""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ProcessingStatus(str, Enum):
    """Outcome of exporting one work item.

    - Success: Item was fetched, converted and upserted
    - Fail: Any stage failed; the item is retried on the next run
    - Skipped: Item unchanged since its last successful export
    """

    SUCCESS = "Success"
    FAIL = "Fail"
    SKIPPED = "Skipped"


class WorkItem(BaseModel):
    """One exportable source document.

    ``last_modified_at`` keeps the raw source timestamp so that missing or
    malformed values survive persistence and can be detected later.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Source document ID")]
    last_modified_at: str | None = Field(
        default=None, description="Raw last-modified timestamp from the source"
    )
    title: str = Field(default="", description="Document title")


class ItemStateEntry(BaseModel):
    """Last successfully exported version of an item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    last_modified_at: str | None = Field(
        default=None, description="Source timestamp at the time of export"
    )
    artifact_ref: str | None = Field(
        default=None, description="Reference to the exported artifact"
    )
    title: str = Field(default="", description="Title at the time of export")


class ProcessingResult(BaseModel):
    """Result of processing (or skipping) a single work item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    item_id: Annotated[str, Field(min_length=1, description="Work item ID")]
    title: str = Field(default="", description="Work item title")
    status: ProcessingStatus = Field(description="Processing outcome")
    message: str = Field(default="", description="Human-readable detail")
    artifact_ref: str | None = Field(
        default=None, description="Artifact reference, if one exists"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the result was produced",
    )

    @classmethod
    def success(
        cls, item: WorkItem, message: str, artifact_ref: str | None
    ) -> "ProcessingResult":
        """Build a Success result for an item."""
        return cls(
            item_id=item.id,
            title=item.title,
            status=ProcessingStatus.SUCCESS,
            message=message,
            artifact_ref=artifact_ref,
        )

    @classmethod
    def failure(cls, item: WorkItem, message: str) -> "ProcessingResult":
        """Build a Fail result for an item."""
        return cls(
            item_id=item.id,
            title=item.title,
            status=ProcessingStatus.FAIL,
            message=message,
        )

    @classmethod
    def skipped(cls, item: WorkItem, artifact_ref: str | None) -> "ProcessingResult":
        """Build a Skipped result carrying the previously exported artifact."""
        return cls(
            item_id=item.id,
            title=item.title,
            status=ProcessingStatus.SKIPPED,
            message="Unchanged since last export",
            artifact_ref=artifact_ref,
        )


class QueueEntry(BaseModel):
    """One entry of a run's item queue.

    Skip entries carry their result already resolved by change detection;
    the scheduler copies it into the chunk results without processing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    item: WorkItem
    pre_resolved: ProcessingResult | None = None

    @property
    def is_skip(self) -> bool:
        """Check if this entry was resolved before the run started."""
        return self.pre_resolved is not None


class RunState(BaseModel):
    """Persisted state of the single active export run.

    Attributes:
        run_id: Unique run identifier, also carried by continuations.
        in_progress: Whether the run is active.
        cursor: Index of the next chunk to process.
        chunk_size: Items per chunk, fixed at run start.
        total_count: Number of entries in the item queue.
        processed_count: Entries processed so far.
        item_queue: Snapshot captured at run start.
        started_at: When the run started.
        accumulated_results: Results per chunk index.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: Annotated[str, Field(min_length=1)]
    in_progress: bool = True
    cursor: Annotated[int, Field(ge=0)] = 0
    chunk_size: Annotated[int, Field(ge=1)]
    total_count: Annotated[int, Field(ge=0)]
    processed_count: Annotated[int, Field(ge=0)] = 0
    item_queue: tuple[QueueEntry, ...] = ()
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    accumulated_results: dict[int, tuple[ProcessingResult, ...]] = Field(
        default_factory=dict
    )

    @property
    def chunk_count(self) -> int:
        """Number of chunks needed to drain the queue."""
        return math.ceil(self.total_count / self.chunk_size)

    @property
    def is_exhausted(self) -> bool:
        """Check if every chunk has been processed."""
        return self.cursor * self.chunk_size >= self.total_count

    def chunk_bounds(self, cursor: int | None = None) -> tuple[int, int]:
        """Get the queue slice bounds for a chunk.

        Args:
            cursor: Chunk index (defaults to the current cursor).

        Returns:
            Tuple of (start, end) indices, end exclusive.
        """
        index = self.cursor if cursor is None else cursor
        start = index * self.chunk_size
        end = min((index + 1) * self.chunk_size, self.total_count)
        return start, max(start, end)

    def current_chunk(self) -> tuple[QueueEntry, ...]:
        """Get the queue entries of the chunk at the cursor."""
        start, end = self.chunk_bounds()
        return self.item_queue[start:end]

    def all_results(self) -> list[ProcessingResult]:
        """Flatten accumulated results in chunk order."""
        results: list[ProcessingResult] = []
        for index in sorted(self.accumulated_results):
            results.extend(self.accumulated_results[index])
        return results


class RunLease(BaseModel):
    """Single-writer lease guarding run ownership."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: Annotated[str, Field(min_length=1)]
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Check if the lease has expired at the given time."""
        return now >= self.expires_at


class ResultRow(BaseModel):
    """A row of the durable result log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    row_id: int | None = Field(default=None, description="Log row ID")
    run_id: Annotated[str, Field(min_length=1)]
    logged_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    result: ProcessingResult


class RunRecord(BaseModel):
    """Run history record.

    Written once per completed run, and once per run attempt that aborted
    before any run state existed.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: Annotated[str, Field(min_length=1)]
    started_at: datetime
    finished_at: datetime | None = None
    success: bool | None = None
    total: Annotated[int, Field(ge=0)] = 0
    success_count: Annotated[int, Field(ge=0)] = 0
    fail_count: Annotated[int, Field(ge=0)] = 0
    skipped_count: Annotated[int, Field(ge=0)] = 0
    error_summary: str | None = None
