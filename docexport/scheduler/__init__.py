"""Batch scheduler: chunked, resumable export runs with continuations."""

from docexport.scheduler.continuation import (
    Continuation,
    ContinuationScheduler,
    InMemoryContinuationScheduler,
    StoreContinuationScheduler,
)
from docexport.scheduler.driver import drive
from docexport.scheduler.errors import RunAlreadyActiveError, SchedulerError
from docexport.scheduler.metrics import SchedulerMetrics
from docexport.scheduler.scheduler import BatchScheduler, TickOutcome, TickStatus
from docexport.scheduler.state_machine import (
    SchedulerState,
    SchedulerStateError,
    SchedulerStateMachine,
)


__all__ = [
    # Continuations
    "Continuation",
    "ContinuationScheduler",
    "InMemoryContinuationScheduler",
    "StoreContinuationScheduler",
    "drive",
    # Errors
    "RunAlreadyActiveError",
    "SchedulerError",
    # Metrics
    "SchedulerMetrics",
    # Scheduler
    "BatchScheduler",
    "TickOutcome",
    "TickStatus",
    # State machine
    "SchedulerState",
    "SchedulerStateError",
    "SchedulerStateMachine",
]
