"""Typed access to run state, item state and the run lease.

The progress store maps the persisted key layout onto the pydantic models.
Undecodable values never escape as errors: they are logged, counted, and
replaced by an empty or default value.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError

from docexport.store import constants as keys
from docexport.store.errors import StoreCorruptionError
from docexport.store.kv import PersistentStore
from docexport.store.metrics import StoreMetrics
from docexport.store.models import (
    ItemStateEntry,
    ProcessingResult,
    QueueEntry,
    RunLease,
    RunState,
    WorkItem,
)


logger = structlog.get_logger()

T = TypeVar("T")

_QUEUE_ADAPTER = TypeAdapter(tuple[QueueEntry, ...])
_RESULTS_ADAPTER = TypeAdapter(dict[int, tuple[ProcessingResult, ...]])
_ITEM_STATE_ADAPTER = TypeAdapter(dict[str, ItemStateEntry])


class ProgressStore:
    """Progress persistence on top of a key/value store.

    Every method call maps to one or more single-key writes; each write is a
    recovery point. Write ordering is chosen so an interrupted sequence never
    reads back as an active run that cannot be continued.
    """

    def __init__(
        self,
        store: PersistentStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the progress store.

        Args:
            store: Underlying key/value store.
            clock: Optional clock returning aware UTC datetimes.
        """
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="progress")

    @property
    def store(self) -> PersistentStore:
        """Get the underlying key/value store."""
        return self._store

    # ===== Decoding helpers =====

    def _decode(self, key: str, raw: str, parse: Callable[[str], T]) -> T:
        """Decode a raw value, raising StoreCorruptionError on failure."""
        try:
            return parse(raw)
        except (ValueError, ValidationError) as e:
            raise StoreCorruptionError(key, str(e)) from e

    def _read_or_default(
        self, key: str, parse: Callable[[str], T], default: T
    ) -> T:
        """Read and decode a key, falling back to a default when corrupt."""
        raw = self._store.get(key)
        if raw is None:
            return default
        try:
            return self._decode(key, raw, parse)
        except StoreCorruptionError as e:
            self._metrics.record_corrupt_value()
            self._log.warning("store_value_corrupt", key=key, reason=e.reason)
            return default

    def _require(self, key: str) -> str:
        raw = self._store.get(key)
        if raw is None:
            raise StoreCorruptionError(key, "missing")
        return raw

    # ===== Run State =====

    def is_run_in_progress(self) -> bool:
        """Check the persisted in-progress flag."""
        return self._store.get(keys.RUN_IN_PROGRESS) == keys.TRUE_VALUE

    def load_run_state(self) -> RunState | None:
        """Load the active run.

        Returns:
            The active RunState, or None when no run is active or its core
            fields cannot be decoded.
        """
        if not self.is_run_in_progress():
            return None

        try:
            run_id = self._require(keys.RUN_ID)
            cursor = self._decode(keys.RUN_CURSOR, self._require(keys.RUN_CURSOR), int)
            chunk_size = self._decode(
                keys.RUN_CHUNK_SIZE, self._require(keys.RUN_CHUNK_SIZE), int
            )
            total_count = self._decode(
                keys.RUN_TOTAL_COUNT, self._require(keys.RUN_TOTAL_COUNT), int
            )
            item_queue = self._decode(
                keys.RUN_ITEM_QUEUE,
                self._require(keys.RUN_ITEM_QUEUE),
                _QUEUE_ADAPTER.validate_json,
            )
            started_at = self._decode(
                keys.RUN_STARTED_AT,
                self._require(keys.RUN_STARTED_AT),
                datetime.fromisoformat,
            )
        except StoreCorruptionError as e:
            self._metrics.record_corrupt_value()
            self._log.error("run_state_corrupt", key=e.key, reason=e.reason)
            return None

        processed_count = self._read_or_default(keys.RUN_PROCESSED_COUNT, int, 0)
        results = self._read_or_default(
            keys.RUN_RESULTS, _RESULTS_ADAPTER.validate_json, {}
        )

        try:
            return RunState(
                run_id=run_id,
                in_progress=True,
                cursor=cursor,
                chunk_size=chunk_size,
                total_count=total_count,
                processed_count=processed_count,
                item_queue=item_queue,
                started_at=started_at,
                accumulated_results=results,
            )
        except ValidationError as e:
            self._metrics.record_corrupt_value()
            self._log.error("run_state_corrupt", key="RUN_*", reason=str(e))
            return None

    def save_run_state(self, run: RunState) -> None:
        """Persist a new run.

        The in-progress flag is written last, so a crash part-way leaves
        the store reading as idle.

        Args:
            run: The run to persist.
        """
        self._store.set(keys.RUN_ID, run.run_id)
        self._store.set(keys.RUN_CURSOR, str(run.cursor))
        self._store.set(keys.RUN_CHUNK_SIZE, str(run.chunk_size))
        self._store.set(keys.RUN_TOTAL_COUNT, str(run.total_count))
        self._store.set(keys.RUN_PROCESSED_COUNT, str(run.processed_count))
        self._store.set(
            keys.RUN_ITEM_QUEUE, _QUEUE_ADAPTER.dump_json(run.item_queue).decode()
        )
        self._store.set(keys.RUN_STARTED_AT, run.started_at.isoformat())
        self._store.set(
            keys.RUN_RESULTS,
            _RESULTS_ADAPTER.dump_json(run.accumulated_results).decode(),
        )
        self._store.set(keys.RUN_IN_PROGRESS, keys.TRUE_VALUE)

        self._log.info(
            "run_state_saved",
            run_id=run.run_id,
            total_count=run.total_count,
            chunk_size=run.chunk_size,
        )

    def save_chunk_progress(self, run: RunState) -> None:
        """Persist progress after a chunk.

        Results are written first and the cursor last. Results are keyed by
        chunk index, so if the process dies before the cursor write the
        chunk is re-run and its results overwritten rather than duplicated.

        Args:
            run: Run state with the updated cursor and results.
        """
        self._store.set(
            keys.RUN_RESULTS,
            _RESULTS_ADAPTER.dump_json(run.accumulated_results).decode(),
        )
        self._store.set(keys.RUN_PROCESSED_COUNT, str(run.processed_count))
        self._store.set(keys.RUN_CURSOR, str(run.cursor))

    def clear_run_state(self) -> None:
        """Delete every run key, including the run lease.

        The in-progress flag goes first, so from the first delete onward
        the store reads as idle. The lease goes second, so an ended run
        never keeps a new one from starting.
        """
        self._store.delete(keys.RUN_IN_PROGRESS)
        for key in keys.RUN_STATE_KEYS:
            self._store.delete(key)
        self._log.info("run_state_cleared")

    # ===== Item State =====

    def load_item_state(self) -> dict[str, ItemStateEntry]:
        """Load the per-item export state (empty if absent or corrupt)."""
        return self._read_or_default(
            keys.ITEM_STATE, _ITEM_STATE_ADAPTER.validate_json, {}
        )

    def get_item_state(self, item_id: str) -> ItemStateEntry | None:
        """Get the export state of one item."""
        return self.load_item_state().get(item_id)

    def record_item_success(
        self, item: WorkItem, artifact_ref: str | None
    ) -> ItemStateEntry:
        """Record a successful export of an item.

        Args:
            item: The exported item.
            artifact_ref: Reference to the written artifact.

        Returns:
            The stored entry.
        """
        entry = ItemStateEntry(
            last_modified_at=item.last_modified_at or self._clock().isoformat(),
            artifact_ref=artifact_ref,
            title=item.title,
        )
        state = self.load_item_state()
        state[item.id] = entry
        self._store.set(keys.ITEM_STATE, _ITEM_STATE_ADAPTER.dump_json(state).decode())
        return entry

    def reset_item_state(self) -> None:
        """Forget every exported item so the next run treats all as new."""
        self._store.delete(keys.ITEM_STATE)
        self._store.delete(keys.LAST_EXPORT_TIMESTAMP)
        self._log.info("item_state_reset")

    def mark_export_finished(self, finished_at: datetime) -> None:
        """Record when the last run completed."""
        self._store.set(keys.LAST_EXPORT_TIMESTAMP, finished_at.isoformat())

    def last_export_finished_at(self) -> datetime | None:
        """Get when the last run completed, if known."""
        return self._read_or_default(
            keys.LAST_EXPORT_TIMESTAMP, datetime.fromisoformat, None
        )

    # ===== Lease =====

    def load_lease(self) -> RunLease | None:
        """Get the current lease, or None if absent or corrupt."""
        return self._read_or_default(
            keys.RUN_LEASE, RunLease.model_validate_json, None
        )

    def acquire_lease(self, token: str, ttl_seconds: float) -> bool:
        """Take the run lease for a token.

        Succeeds when no lease exists, the existing lease has expired, or
        the token already holds it. The write is a compare-and-set against
        the value just read, so of two racing callers only one wins.

        Args:
            token: Run token claiming the lease.
            ttl_seconds: Lease lifetime.

        Returns:
            True if the caller now holds the lease.
        """
        now = self._clock()
        raw = self._store.get(keys.RUN_LEASE)
        current = self.load_lease() if raw is not None else None

        if current is not None and current.token != token and not current.is_expired(now):
            self._log.info(
                "lease_held",
                holder=current.token,
                expires_at=current.expires_at.isoformat(),
            )
            return False

        lease = RunLease(token=token, expires_at=now + timedelta(seconds=ttl_seconds))
        acquired = self._store.compare_and_set(
            keys.RUN_LEASE, raw, lease.model_dump_json()
        )
        if acquired and current is not None and current.token != token:
            self._log.warning(
                "lease_reclaimed",
                previous_holder=current.token,
                token=token,
            )
        return acquired

    def renew_lease(self, token: str, ttl_seconds: float) -> bool:
        """Extend the lease held by a token.

        Returns:
            True if the token held the lease and it was extended.
        """
        current = self.load_lease()
        if current is None or current.token != token:
            return False
        return self.acquire_lease(token, ttl_seconds)

    def release_lease(self, token: str | None = None) -> None:
        """Release the lease.

        Args:
            token: Only release if this token holds it (None releases any).
        """
        raw = self._store.get(keys.RUN_LEASE)
        if raw is None:
            return
        if token is not None:
            current = self.load_lease()
            if current is not None and current.token != token:
                return
        self._store.compare_and_set(keys.RUN_LEASE, raw, None)
