"""Reporting models: run summary and status panel."""

import math
from collections import Counter
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from docexport.store.models import ProcessingResult, ProcessingStatus


PROGRESS_BAR_WIDTH = 20
PROGRESS_FILLED = "▓"
PROGRESS_EMPTY = "░"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_percent(processed: int, total: int) -> int:
    """Get the completion percentage, rounded half up."""
    if total <= 0:
        return 0
    return _round_half_up(processed / total * 100)


def render_progress_bar(
    processed: int, total: int, width: int = PROGRESS_BAR_WIDTH
) -> str:
    """Render a fixed-width text progress bar.

    Args:
        processed: Items processed.
        total: Total items.
        width: Number of cells.

    Returns:
        Bar of filled and empty cells.
    """
    filled = 0 if total <= 0 else _round_half_up(processed / total * width)
    filled = max(0, min(width, filled))
    return PROGRESS_FILLED * filled + PROGRESS_EMPTY * (width - filled)


def format_duration(seconds: float) -> str:
    """Format a duration as minutes and seconds."""
    whole = max(0, int(seconds))
    minutes, secs = divmod(whole, 60)
    return f"{minutes}m {secs}s"


class RunSummary(BaseModel):
    """Consolidated counts for a finished run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: Annotated[str, Field(min_length=1)]
    total: Annotated[int, Field(ge=0)]
    success: Annotated[int, Field(ge=0)]
    fail: Annotated[int, Field(ge=0)]
    skipped: Annotated[int, Field(ge=0)]
    started_at: datetime
    finished_at: datetime
    duration_seconds: Annotated[float, Field(ge=0.0)]

    @classmethod
    def from_results(
        cls,
        run_id: str,
        results: list[ProcessingResult],
        started_at: datetime,
        finished_at: datetime,
    ) -> "RunSummary":
        """Aggregate per-status counts and elapsed time.

        Args:
            run_id: The run identifier.
            results: Every result of the run.
            started_at: When the run started.
            finished_at: When the run finished.

        Returns:
            The summary.
        """
        counts = Counter(result.status for result in results)
        return cls(
            run_id=run_id,
            total=len(results),
            success=counts[ProcessingStatus.SUCCESS],
            fail=counts[ProcessingStatus.FAIL],
            skipped=counts[ProcessingStatus.SKIPPED],
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=max(0.0, (finished_at - started_at).total_seconds()),
        )

    @property
    def is_success(self) -> bool:
        """Check if no item failed."""
        return self.fail == 0

    def describe(self) -> str:
        """Render a one-line human-readable summary."""
        return (
            f"{self.total} items: {self.success} exported, {self.skipped} skipped, "
            f"{self.fail} failed in {format_duration(self.duration_seconds)}"
        )


class StatusPanel(BaseModel):
    """Latest progress snapshot of the active or last run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: str | None = None
    processed: Annotated[int, Field(ge=0)] = 0
    total: Annotated[int, Field(ge=0)] = 0
    percent: Annotated[int, Field(ge=0, le=100)] = 0
    progress_bar: str = Field(default=PROGRESS_EMPTY * PROGRESS_BAR_WIDTH)
    latest_results: tuple[ProcessingResult, ...] = ()
    updated_at: datetime
    message: str | None = None

    @classmethod
    def build(  # noqa: PLR0913
        cls,
        run_id: str | None,
        processed: int,
        total: int,
        latest_results: list[ProcessingResult],
        updated_at: datetime,
        message: str | None = None,
    ) -> "StatusPanel":
        """Build a panel with percent and progress bar filled in."""
        return cls(
            run_id=run_id,
            processed=processed,
            total=total,
            percent=compute_percent(processed, total),
            progress_bar=render_progress_bar(processed, total),
            latest_results=tuple(latest_results),
            updated_at=updated_at,
            message=message,
        )
