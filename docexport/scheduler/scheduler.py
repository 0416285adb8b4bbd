"""Batch scheduler: chunked, resumable execution of an export run."""

import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

from docexport.config.models import ExportConfig
from docexport.detector.differ import ChangeDetector
from docexport.processor.processor import ItemProcessor
from docexport.processor.protocols import ConversionEngine, SourceClient
from docexport.reporter.models import RunSummary
from docexport.reporter.reporter import RunReporter
from docexport.scheduler.continuation import ContinuationScheduler
from docexport.scheduler.errors import RunAlreadyActiveError
from docexport.scheduler.metrics import SchedulerMetrics
from docexport.scheduler.state_machine import SchedulerState, SchedulerStateMachine
from docexport.source.errors import SourceError
from docexport.store.models import ProcessingResult, RunState
from docexport.store.progress import ProgressStore


logger = structlog.get_logger()

NO_ITEMS_MESSAGE = "No items found in the source"

# States left behind by an interrupted call, realigned on the next call
_RESUMABLE_STATES = frozenset(
    {SchedulerState.IDLE, SchedulerState.COMPLETING, SchedulerState.CANCELLED}
)
_SETTLED_STATES = frozenset(
    {SchedulerState.RUNNING, SchedulerState.COMPLETING, SchedulerState.CANCELLED}
)


class TickStatus(str, Enum):
    """What a tick did.

    - IGNORED_IDLE: No active run (stale continuation)
    - IGNORED_STALE_TOKEN: Token does not match the active run
    - IGNORED_UNREADABLE: Run state exists but cannot be decoded
    - IGNORED_LEASE_HELD: Another writer holds the run lease
    - CONTINUED: A chunk was processed and a continuation armed
    - COMPLETED: The run was finalized
    """

    IGNORED_IDLE = "ignored_idle"
    IGNORED_STALE_TOKEN = "ignored_stale_token"
    IGNORED_UNREADABLE = "ignored_unreadable"
    IGNORED_LEASE_HELD = "ignored_lease_held"
    CONTINUED = "continued"
    COMPLETED = "completed"


class TickOutcome(BaseModel):
    """Result of one tick."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: TickStatus
    run_id: str | None = None
    cursor: int = 0
    processed_count: int = 0
    total_count: int = 0
    chunk_results: tuple[ProcessingResult, ...] = Field(default=())
    summary: RunSummary | None = None

    @property
    def ignored(self) -> bool:
        """Check if the tick did nothing."""
        return self.status not in (TickStatus.CONTINUED, TickStatus.COMPLETED)


class BatchScheduler:
    """Drives an export run one chunk per invocation.

    The progress store is the source of truth: every operation first
    aligns the in-memory state machine with the persisted run, so a fresh
    scheduler over the same store resumes where the last one stopped.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: ExportConfig,
        progress: ProgressStore,
        source: SourceClient,
        engine: ConversionEngine,
        continuations: ContinuationScheduler,
        reporter: RunReporter,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Export configuration.
            progress: Progress store.
            source: Source client for listing and fetching.
            engine: Conversion engine for upserts.
            continuations: Host continuation mechanism.
            reporter: Run reporter.
            clock: Optional clock returning aware UTC datetimes.
        """
        self._config = config
        self._progress = progress
        self._source = source
        self._engine = engine
        self._continuations = continuations
        self._reporter = reporter
        self._clock = clock or (lambda: datetime.now(UTC))
        self._machine = SchedulerStateMachine()
        self._metrics = SchedulerMetrics.get_instance()
        self._log = logger.bind(component="scheduler")
        self._sync_state()

    @property
    def state(self) -> SchedulerState:
        """Get the scheduler state, aligned with the persisted run."""
        self._sync_state()
        return self._machine.state

    def _sync_state(self) -> None:
        active = self._progress.is_run_in_progress()
        state = self._machine.state
        if active and state in _RESUMABLE_STATES:
            self._machine.restore(SchedulerState.RUNNING)
        elif not active and state in _SETTLED_STATES:
            self._machine.restore(SchedulerState.IDLE)

    # ===== Start =====

    def start(self, force: bool = False) -> RunState | None:
        """Begin a new run.

        Lists the source, partitions it against the exported item state and
        persists the run plan. Does not process a chunk.

        Args:
            force: Process every item regardless of change detection.

        Returns:
            The new run, or None when the source has no items.

        Raises:
            RunAlreadyActiveError: If a live run holds the lease.
            SourceError: If listing fails; no run state is left behind.
        """
        self._sync_state()
        run_id = uuid.uuid4().hex
        started_at = self._clock()
        log = self._log.bind(run_id=run_id)

        if self._progress.is_run_in_progress():
            self._reclaim_or_refuse(log)
        else:
            self._release_orphaned_lease(log)

        # Short lease until the run is persisted; a start killed mid-listing
        # only blocks new runs for this long
        if not self._progress.acquire_lease(
            run_id, self._config.start_lease_ttl_seconds
        ):
            lease = self._progress.load_lease()
            raise RunAlreadyActiveError(lease.token if lease else None)

        self._machine.transition(SchedulerState.INITIALIZING)

        try:
            snapshot = self._source.list_work_items()
        except SourceError as e:
            self._abort_start(run_id, started_at, str(e))
            log.error("run_start_failed", error_type=type(e).__name__, error=str(e))
            raise
        except Exception as e:
            self._abort_start(run_id, started_at, f"{type(e).__name__}: {e}")
            log.error("run_start_failed", error_type=type(e).__name__, error=str(e))
            raise

        if not snapshot:
            self._abort_start(run_id, started_at, NO_ITEMS_MESSAGE)
            log.warning("run_start_empty_source")
            return None

        detector = ChangeDetector(run_id=run_id)
        partition = detector.partition(
            snapshot, self._progress.load_item_state(), force=force
        )
        queue = partition.item_queue()

        run = RunState(
            run_id=run_id,
            cursor=0,
            chunk_size=self._config.chunk_size,
            total_count=len(queue),
            processed_count=0,
            item_queue=queue,
            started_at=started_at,
        )
        self._progress.save_run_state(run)
        self._progress.renew_lease(run_id, self._config.lease_ttl_seconds)
        self._reporter.report_started(run)
        self._machine.transition(SchedulerState.RUNNING)
        self._metrics.runs_started_total += 1

        log.info(
            "run_started",
            total_count=run.total_count,
            to_process=len(partition.to_process),
            to_skip=len(partition.to_skip),
            chunk_size=run.chunk_size,
            chunk_count=run.chunk_count,
            force=force,
        )
        return run

    def _reclaim_or_refuse(self, log: structlog.typing.FilteringBoundLogger) -> None:
        """Handle a persisted run found at start.

        A run whose lease is still live is active. A run whose lease is gone
        or expired was abandoned and is cleared so a new run can start.
        """
        lease = self._progress.load_lease()
        if lease is not None and not lease.is_expired(self._clock()):
            raise RunAlreadyActiveError(lease.token)

        previous = self._progress.load_run_state()
        log.warning(
            "abandoned_run_reclaimed",
            previous_run_id=previous.run_id if previous else None,
            previous_cursor=previous.cursor if previous else None,
        )
        self._continuations.cancel_all()
        self._progress.clear_run_state()
        self._machine.restore(SchedulerState.IDLE)

    def _release_orphaned_lease(
        self, log: structlog.typing.FilteringBoundLogger
    ) -> None:
        """Drop a lease left behind by a run that already ended.

        Starts hold the lease with the start TTL until their run is
        persisted, so with no run in progress a lease outliving that window
        belongs to a run whose clean-up was interrupted.
        """
        lease = self._progress.load_lease()
        if lease is None:
            return
        horizon = self._clock() + timedelta(
            seconds=self._config.start_lease_ttl_seconds
        )
        # Re-check the flag after reading the lease: a start persisting its
        # run writes the flag before extending the lease
        if lease.expires_at <= horizon or self._progress.is_run_in_progress():
            return
        log.warning(
            "orphaned_lease_released",
            previous_holder=lease.token,
            expires_at=lease.expires_at.isoformat(),
        )
        self._progress.release_lease(lease.token)

    def _abort_start(self, run_id: str, started_at: datetime, message: str) -> None:
        self._progress.release_lease(run_id)
        self._reporter.report_failure_notice(run_id, started_at, message)
        self._machine.transition(SchedulerState.IDLE)
        self._metrics.runs_aborted_total += 1

    # ===== Tick =====

    def tick(self, run_token: str | None = None) -> TickOutcome:
        """Process the chunk at the cursor.

        A no-op when no run is active or the token belongs to another run,
        so a stale continuation firing after cancel or completion is safe.

        Args:
            run_token: Run ID carried by the continuation, if any.

        Returns:
            What the tick did.
        """
        self._sync_state()
        self._metrics.ticks_total += 1

        if self._machine.is_idle():
            return self._ignore(TickStatus.IGNORED_IDLE, run_token=run_token)

        run = self._progress.load_run_state()
        if run is None:
            self._log.error("run_state_unreadable")
            return self._ignore(TickStatus.IGNORED_UNREADABLE, run_token=run_token)

        if run_token is not None and run_token != run.run_id:
            return self._ignore(
                TickStatus.IGNORED_STALE_TOKEN, run_token=run_token, run=run
            )

        if not self._progress.acquire_lease(run.run_id, self._config.lease_ttl_seconds):
            return self._ignore(TickStatus.IGNORED_LEASE_HELD, run_token=run_token, run=run)

        if run.is_exhausted:
            self._log.info("run_resumed_for_finalization", run_id=run.run_id)
            summary = self._finalize(run)
            return self._outcome(TickStatus.COMPLETED, run, summary=summary)

        chunk_results = self._process_chunk(run)
        next_cursor = run.cursor + 1
        updated = run.model_copy(
            update={
                "cursor": next_cursor,
                "processed_count": min(next_cursor * run.chunk_size, run.total_count),
                "accumulated_results": {
                    **run.accumulated_results,
                    run.cursor: tuple(chunk_results),
                },
            }
        )
        self._progress.save_chunk_progress(updated)
        self._reporter.report_chunk(updated, chunk_results)

        self._log.info(
            "chunk_processed",
            run_id=run.run_id,
            chunk_index=run.cursor,
            chunk_count=run.chunk_count,
            processed_count=updated.processed_count,
            total_count=updated.total_count,
        )

        if updated.is_exhausted:
            summary = self._finalize(updated)
            return self._outcome(
                TickStatus.COMPLETED, updated, chunk_results, summary=summary
            )

        self._continuations.arm(self._config.continuation_delay_seconds, run.run_id)
        return self._outcome(TickStatus.CONTINUED, updated, chunk_results)

    def _process_chunk(self, run: RunState) -> list[ProcessingResult]:
        """Process the entries of the chunk at the cursor, in order."""
        start_ns = time.perf_counter_ns()
        processor = ItemProcessor(
            self._source, self._engine, self._progress, run_id=run.run_id
        )
        results: list[ProcessingResult] = []
        for entry in run.current_chunk():
            if entry.pre_resolved is not None:
                results.append(entry.pre_resolved)
            else:
                results.append(processor.process_one(entry.item))

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_chunk(results, duration_ms)
        return results

    def _finalize(self, run: RunState) -> RunSummary:
        """Report, clear run state and lease, then drop continuations."""
        self._machine.transition(SchedulerState.COMPLETING)
        summary = self._reporter.report_completion(run)
        self._progress.mark_export_finished(summary.finished_at)
        self._progress.clear_run_state()
        self._continuations.cancel_all()
        self._machine.transition(SchedulerState.IDLE)
        self._metrics.runs_completed_total += 1

        self._log.info(
            "run_completed",
            run_id=run.run_id,
            total=summary.total,
            success=summary.success,
            fail=summary.fail,
            skipped=summary.skipped,
        )
        return summary

    def _ignore(
        self,
        status: TickStatus,
        run_token: str | None,
        run: RunState | None = None,
    ) -> TickOutcome:
        self._metrics.ticks_ignored_total += 1
        self._log.info(
            "stale_tick_ignored",
            reason=status.value,
            run_token=run_token,
            active_run_id=run.run_id if run else None,
        )
        if run is None:
            return TickOutcome(status=status)
        return self._outcome(status, run)

    def _outcome(
        self,
        status: TickStatus,
        run: RunState,
        chunk_results: list[ProcessingResult] | None = None,
        summary: RunSummary | None = None,
    ) -> TickOutcome:
        return TickOutcome(
            status=status,
            run_id=run.run_id,
            cursor=run.cursor,
            processed_count=run.processed_count,
            total_count=run.total_count,
            chunk_results=tuple(chunk_results or ()),
            summary=summary,
        )

    # ===== Control =====

    def cancel(self) -> bool:
        """Cancel the active run.

        Item state already written is kept; no end-of-run summary is
        recorded.

        Returns:
            True if a run was cancelled, False if idle.
        """
        self._sync_state()
        if self._machine.is_idle():
            self._log.info("cancel_ignored_idle")
            return False

        run = self._progress.load_run_state()
        self._machine.transition(SchedulerState.CANCELLED)
        self._continuations.cancel_all()
        self._progress.clear_run_state()
        if run is not None:
            self._reporter.report_cancelled(run)
        self._machine.transition(SchedulerState.IDLE)
        self._metrics.runs_cancelled_total += 1

        self._log.info(
            "run_cancelled",
            run_id=run.run_id if run else None,
            processed_count=run.processed_count if run else None,
        )
        return True

    def reset_change_detection_baseline(self) -> None:
        """Forget exported item state so the next run processes every item."""
        if self._progress.is_run_in_progress():
            self._log.warning("baseline_reset_during_run")
        self._progress.reset_item_state()

    def status(self) -> RunState | None:
        """Get the active run, if any."""
        return self._progress.load_run_state()
