"""In-process continuation host: honors armed continuations until a run ends."""

import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from docexport.scheduler.continuation import StoreContinuationScheduler
from docexport.scheduler.scheduler import BatchScheduler, TickOutcome, TickStatus


logger = structlog.get_logger()


def drive(
    scheduler: BatchScheduler,
    continuations: StoreContinuationScheduler,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], datetime] | None = None,
    on_tick: Callable[[TickOutcome], None] | None = None,
) -> TickOutcome:
    """Tick the active run until it completes or a tick is ignored.

    Each armed continuation is waited for (sleeping until due) and then
    fired with its run token.

    Args:
        scheduler: Scheduler owning the active run.
        continuations: Persisted continuation scheduler.
        sleep: Sleep function (injectable for tests).
        clock: Optional clock returning aware UTC datetimes.
        on_tick: Optional callback receiving every outcome.

    Returns:
        The last tick outcome.
    """
    now = clock or (lambda: datetime.now(UTC))
    log = logger.bind(component="driver")

    run_token: str | None = None
    while True:
        outcome = scheduler.tick(run_token)
        if on_tick is not None:
            on_tick(outcome)
        if outcome.status != TickStatus.CONTINUED:
            log.info("drive_finished", status=outcome.status.value, run_id=outcome.run_id)
            return outcome

        continuation = continuations.pending()
        if continuation is None:
            run_token = outcome.run_id
            continue

        wait_seconds = (continuation.due_at - now()).total_seconds()
        if wait_seconds > 0:
            log.debug("waiting_for_continuation", seconds=round(wait_seconds, 1))
            sleep(wait_seconds)
        run_token = continuation.run_token
