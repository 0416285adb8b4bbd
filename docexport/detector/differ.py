"""Change detection between a source snapshot and exported item state."""

from datetime import UTC, datetime

import structlog
from dateutil.parser import isoparse
from pydantic import BaseModel, ConfigDict, Field

from docexport.store.models import (
    ItemStateEntry,
    ProcessingResult,
    QueueEntry,
    WorkItem,
)


logger = structlog.get_logger()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a source timestamp.

    Only ISO 8601 is accepted. Free-form text is rejected rather than
    guessed, so corrupt metadata never parses into a plausible date.
    Naive values are treated as UTC.

    Args:
        value: Raw timestamp string.

    Returns:
        Aware datetime, or None if missing or unparseable.
    """
    if not value:
        return None
    try:
        parsed = isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class Partition(BaseModel):
    """Snapshot split into items to process and items to skip.

    Both lists keep snapshot order. Skip entries carry their pre-resolved
    result with the previously exported artifact reference.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    to_process: tuple[WorkItem, ...] = Field(default=())
    to_skip: tuple[QueueEntry, ...] = Field(default=())

    @property
    def process_ids(self) -> list[str]:
        """IDs of items that need processing."""
        return [item.id for item in self.to_process]

    @property
    def skip_ids(self) -> list[str]:
        """IDs of skipped items."""
        return [entry.item.id for entry in self.to_skip]

    def item_queue(self) -> tuple[QueueEntry, ...]:
        """Build a run queue: items to process first, then skip entries."""
        return tuple(QueueEntry(item=item) for item in self.to_process) + self.to_skip


class ChangeDetector:
    """Decides which snapshot items need (re)processing.

    An item is processed when it was never exported, when its source
    timestamp is strictly newer than the exported one, or when either
    timestamp is missing or unparseable. Equal timestamps skip.
    """

    def __init__(self, run_id: str | None = None) -> None:
        """Initialize the detector.

        Args:
            run_id: Optional run ID for logging context.
        """
        self._log = logger.bind(component="detector")
        if run_id:
            self._log = self._log.bind(run_id=run_id)

    def needs_processing(self, item: WorkItem, stored: ItemStateEntry | None) -> bool:
        """Check whether a single item must be processed.

        Args:
            item: Snapshot item.
            stored: Last exported state for the item, if any.

        Returns:
            True if the item must be processed.
        """
        if stored is None:
            return True

        stored_at = parse_timestamp(stored.last_modified_at)
        current_at = parse_timestamp(item.last_modified_at)
        if stored_at is None or current_at is None:
            self._log.info(
                "timestamp_unusable",
                item_id=item.id,
                stored=stored.last_modified_at,
                current=item.last_modified_at,
            )
            return True

        return current_at > stored_at

    def partition(
        self,
        snapshot: list[WorkItem],
        item_state: dict[str, ItemStateEntry],
        *,
        force: bool = False,
    ) -> Partition:
        """Split a snapshot into items to process and items to skip.

        Args:
            snapshot: Items listed from the source, in source order.
            item_state: Last exported state per item ID.
            force: Process every item regardless of timestamps.

        Returns:
            The partition.
        """
        to_process: list[WorkItem] = []
        to_skip: list[QueueEntry] = []

        for item in snapshot:
            stored = item_state.get(item.id)
            if stored is None or force or self.needs_processing(item, stored):
                to_process.append(item)
                continue
            to_skip.append(
                QueueEntry(
                    item=item,
                    pre_resolved=ProcessingResult.skipped(item, stored.artifact_ref),
                )
            )

        self._log.info(
            "snapshot_partitioned",
            snapshot_size=len(snapshot),
            to_process=len(to_process),
            to_skip=len(to_skip),
            force=force,
        )
        return Partition(to_process=tuple(to_process), to_skip=tuple(to_skip))
