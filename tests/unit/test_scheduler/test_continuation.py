"""Unit tests for continuations and the in-process driver."""

from datetime import timedelta

from docexport.scheduler.continuation import (
    Continuation,
    ContinuationScheduler,
    InMemoryContinuationScheduler,
    StoreContinuationScheduler,
)
from docexport.scheduler.driver import drive
from docexport.scheduler.scheduler import TickOutcome, TickStatus
from docexport.store import constants as keys
from docexport.store.kv import InMemoryKeyValueStore
from tests.helpers.fakes import build_harness, make_items
from tests.helpers.time import FIXED_NOW, FakeClock


class TestContinuation:
    """Tests for the Continuation model."""

    def test_is_due(self) -> None:
        """Test the delay is a lower bound."""
        continuation = Continuation(due_at=FIXED_NOW, run_token="run-1")
        assert not continuation.is_due(FIXED_NOW - timedelta(seconds=1))
        assert continuation.is_due(FIXED_NOW)
        assert continuation.is_due(FIXED_NOW + timedelta(hours=1))


class TestInMemoryContinuationScheduler:
    """Tests for InMemoryContinuationScheduler."""

    def test_satisfies_protocol(self) -> None:
        """Test the scheduler implements the protocol."""
        assert isinstance(InMemoryContinuationScheduler(), ContinuationScheduler)

    def test_arm_replaces_previous(self) -> None:
        """Test at most one continuation is armed."""
        clock = FakeClock()
        scheduler = InMemoryContinuationScheduler(clock=clock)
        scheduler.arm(60, "run-1")
        scheduler.arm(10, "run-2")

        assert scheduler.armed == Continuation(
            due_at=FIXED_NOW + timedelta(seconds=10), run_token="run-2"
        )
        assert scheduler.arm_count == 2

    def test_cancel_all(self) -> None:
        """Test cancel drops the armed continuation."""
        scheduler = InMemoryContinuationScheduler()
        scheduler.arm(60, "run-1")
        scheduler.cancel_all()
        assert scheduler.armed is None
        assert scheduler.cancel_count == 1


class TestStoreContinuationScheduler:
    """Tests for StoreContinuationScheduler."""

    def test_satisfies_protocol(self) -> None:
        """Test the scheduler implements the protocol."""
        scheduler = StoreContinuationScheduler(InMemoryKeyValueStore())
        assert isinstance(scheduler, ContinuationScheduler)

    def test_arm_persists(self) -> None:
        """Test an armed continuation survives a new scheduler instance."""
        kv = InMemoryKeyValueStore()
        clock = FakeClock()
        StoreContinuationScheduler(kv, clock=clock).arm(60, "run-1")

        pending = StoreContinuationScheduler(kv, clock=clock).pending()

        assert pending == Continuation(
            due_at=FIXED_NOW + timedelta(seconds=60), run_token="run-1"
        )

    def test_due_respects_delay(self) -> None:
        """Test a continuation is only due after its delay."""
        clock = FakeClock()
        scheduler = StoreContinuationScheduler(InMemoryKeyValueStore(), clock=clock)
        scheduler.arm(60, "run-1")

        assert scheduler.due() is None
        clock.advance(60)
        due = scheduler.due()
        assert due is not None
        assert due.run_token == "run-1"

    def test_cancel_all(self) -> None:
        """Test cancel deletes the persisted continuation."""
        kv = InMemoryKeyValueStore()
        scheduler = StoreContinuationScheduler(kv)
        scheduler.arm(60, "run-1")
        scheduler.cancel_all()
        assert scheduler.pending() is None
        assert keys.CONTINUATION not in kv.data

    def test_corrupt_value_ignored(self) -> None:
        """Test an unreadable continuation reads as absent."""
        kv = InMemoryKeyValueStore({keys.CONTINUATION: "{broken"})
        assert StoreContinuationScheduler(kv).pending() is None


class TestDrive:
    """Tests for the in-process continuation driver."""

    def test_drives_run_to_completion(self) -> None:
        """Test drive ticks every chunk, waiting for each continuation."""
        h = build_harness(make_items(12), chunk_size=5, persist_continuations=True)
        continuations = h.continuations
        assert isinstance(continuations, StoreContinuationScheduler)
        h.scheduler.start()
        sleeps: list[float] = []
        outcomes: list[TickOutcome] = []

        def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            h.clock.advance(seconds)

        final = drive(
            h.scheduler,
            continuations,
            sleep=fake_sleep,
            clock=h.clock,
            on_tick=outcomes.append,
        )

        assert final.status == TickStatus.COMPLETED
        assert [o.processed_count for o in outcomes] == [5, 10, 12]
        assert sleeps == [60.0, 60.0]
        assert continuations.pending() is None

    def test_drive_idle(self) -> None:
        """Test drive returns immediately without an active run."""
        h = build_harness(make_items(1))
        continuations = StoreContinuationScheduler(h.kv, clock=h.clock)

        outcome = drive(h.scheduler, continuations, sleep=lambda _: None, clock=h.clock)

        assert outcome.status == TickStatus.IGNORED_IDLE
