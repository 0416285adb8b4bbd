"""Delay-based continuations that trigger the next tick."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Annotated, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docexport.store import constants as keys
from docexport.store.kv import PersistentStore


logger = structlog.get_logger()


class Continuation(BaseModel):
    """An armed continuation: run the next tick for a run at or after a time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    due_at: datetime
    run_token: Annotated[str, Field(min_length=1)]

    def is_due(self, now: datetime) -> bool:
        """Check if the continuation may fire at the given time."""
        return now >= self.due_at


@runtime_checkable
class ContinuationScheduler(Protocol):
    """Host mechanism that re-invokes tick() after a delay.

    At most one continuation is armed: ``arm`` replaces any previous one.
    The delay is a lower bound only.
    """

    def arm(self, delay_seconds: float, run_token: str) -> None:
        """Arm a continuation carrying the run token."""
        ...

    def cancel_all(self) -> None:
        """Remove every armed continuation."""
        ...


class InMemoryContinuationScheduler:
    """Continuation scheduler that only records what was armed."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        """Initialize the scheduler.

        Args:
            clock: Optional clock returning aware UTC datetimes.
        """
        self._clock = clock or (lambda: datetime.now(UTC))
        self._armed: Continuation | None = None
        self.arm_count = 0
        self.cancel_count = 0

    @property
    def armed(self) -> Continuation | None:
        """Get the armed continuation, if any."""
        return self._armed

    def arm(self, delay_seconds: float, run_token: str) -> None:
        """Arm a continuation, replacing any previous one."""
        self._armed = Continuation(
            due_at=self._clock() + timedelta(seconds=delay_seconds),
            run_token=run_token,
        )
        self.arm_count += 1

    def cancel_all(self) -> None:
        """Drop the armed continuation."""
        self._armed = None
        self.cancel_count += 1


class StoreContinuationScheduler:
    """Continuation scheduler persisted in the progress store.

    A host (cron job, the ``drive`` command) polls ``due()`` and runs the
    tick with the carried token. Survives process restarts.
    """

    def __init__(
        self,
        store: PersistentStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Key/value store holding the continuation.
            clock: Optional clock returning aware UTC datetimes.
        """
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = logger.bind(component="continuation")

    def arm(self, delay_seconds: float, run_token: str) -> None:
        """Persist a continuation, replacing any previous one."""
        continuation = Continuation(
            due_at=self._clock() + timedelta(seconds=delay_seconds),
            run_token=run_token,
        )
        self._store.set(keys.CONTINUATION, continuation.model_dump_json())
        self._log.info(
            "continuation_armed",
            run_token=run_token,
            due_at=continuation.due_at.isoformat(),
        )

    def cancel_all(self) -> None:
        """Delete the persisted continuation."""
        self._store.delete(keys.CONTINUATION)

    def pending(self) -> Continuation | None:
        """Get the armed continuation, or None if absent or unreadable."""
        raw = self._store.get(keys.CONTINUATION)
        if raw is None:
            return None
        try:
            return Continuation.model_validate_json(raw)
        except ValidationError as e:
            self._log.warning("continuation_corrupt", error=str(e))
            return None

    def due(self, now: datetime | None = None) -> Continuation | None:
        """Get the armed continuation if it may fire now."""
        continuation = self.pending()
        if continuation is None:
            return None
        if not continuation.is_due(now or self._clock()):
            return None
        return continuation
