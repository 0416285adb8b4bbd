"""Unit tests for the scheduler state machine."""

import pytest

from docexport.scheduler.state_machine import (
    SchedulerState,
    SchedulerStateError,
    SchedulerStateMachine,
)


class TestSchedulerStateMachine:
    """Tests for SchedulerStateMachine."""

    def test_initial_state(self) -> None:
        """Test machine starts idle."""
        machine = SchedulerStateMachine()
        assert machine.state == SchedulerState.IDLE
        assert machine.is_idle()

    def test_full_run_lifecycle(self) -> None:
        """Test IDLE -> INITIALIZING -> RUNNING -> COMPLETING -> IDLE."""
        machine = SchedulerStateMachine()
        machine.transition(SchedulerState.INITIALIZING)
        machine.transition(SchedulerState.RUNNING)
        assert machine.is_running()
        machine.transition(SchedulerState.COMPLETING)
        machine.transition(SchedulerState.IDLE)
        assert machine.is_idle()

    def test_cancel_from_running(self) -> None:
        """Test RUNNING -> CANCELLED -> IDLE."""
        machine = SchedulerStateMachine(initial=SchedulerState.RUNNING)
        machine.transition(SchedulerState.CANCELLED)
        machine.transition(SchedulerState.IDLE)
        assert machine.is_idle()

    def test_aborted_start(self) -> None:
        """Test INITIALIZING can fall back to IDLE."""
        machine = SchedulerStateMachine()
        machine.transition(SchedulerState.INITIALIZING)
        assert machine.can_transition(SchedulerState.IDLE)
        machine.transition(SchedulerState.IDLE)

    @pytest.mark.parametrize(
        ("from_state", "to_state"),
        [
            (SchedulerState.IDLE, SchedulerState.RUNNING),
            (SchedulerState.IDLE, SchedulerState.CANCELLED),
            (SchedulerState.RUNNING, SchedulerState.IDLE),
            (SchedulerState.RUNNING, SchedulerState.INITIALIZING),
            (SchedulerState.COMPLETING, SchedulerState.RUNNING),
            (SchedulerState.CANCELLED, SchedulerState.RUNNING),
        ],
    )
    def test_invalid_transitions(
        self, from_state: SchedulerState, to_state: SchedulerState
    ) -> None:
        """Test illegal transitions raise and leave the state unchanged."""
        machine = SchedulerStateMachine(initial=from_state)
        assert not machine.can_transition(to_state)

        with pytest.raises(SchedulerStateError) as exc_info:
            machine.transition(to_state)

        assert exc_info.value.from_state == from_state
        assert exc_info.value.to_state == to_state
        assert machine.state == from_state

    def test_restore_bypasses_transition_table(self) -> None:
        """Test restore aligns with persisted state directly."""
        machine = SchedulerStateMachine()
        machine.restore(SchedulerState.RUNNING)
        assert machine.is_running()
        machine.restore(SchedulerState.IDLE)
        assert machine.is_idle()
