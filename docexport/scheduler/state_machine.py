"""Batch scheduler state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class SchedulerState(Enum):
    """Batch scheduler states.

    State transitions:
        IDLE -> INITIALIZING: start() begins snapshotting the source
        INITIALIZING -> RUNNING: Run state persisted
        INITIALIZING -> IDLE: Start aborted (fetch failure, empty source)
        INITIALIZING/RUNNING -> CANCELLED: cancel()
        RUNNING -> COMPLETING: Last chunk processed
        COMPLETING/CANCELLED -> IDLE: Run state cleared
    """

    IDLE = auto()
    INITIALIZING = auto()
    RUNNING = auto()
    COMPLETING = auto()
    CANCELLED = auto()


class SchedulerStateError(Exception):
    """Raised when an invalid scheduler state transition is attempted."""

    def __init__(self, from_state: SchedulerState, to_state: SchedulerState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid scheduler state transition: {from_state.name} -> {to_state.name}"
        )


class SchedulerStateMachine:
    """State machine for the batch scheduler.

    The in-memory state mirrors the persisted run: ``restore`` aligns it
    with what the progress store says after a process restart, without
    going through the transition table.
    """

    VALID_TRANSITIONS: ClassVar[dict[SchedulerState, set[SchedulerState]]] = {
        SchedulerState.IDLE: {SchedulerState.INITIALIZING},
        SchedulerState.INITIALIZING: {
            SchedulerState.RUNNING,
            SchedulerState.CANCELLED,
            SchedulerState.IDLE,
        },
        SchedulerState.RUNNING: {
            SchedulerState.COMPLETING,
            SchedulerState.CANCELLED,
        },
        SchedulerState.COMPLETING: {SchedulerState.IDLE},
        SchedulerState.CANCELLED: {SchedulerState.IDLE},
    }

    def __init__(self, initial: SchedulerState = SchedulerState.IDLE) -> None:
        """Initialize the state machine.

        Args:
            initial: Starting state.
        """
        self._state = initial
        self._log = logger.bind(component="scheduler")

    @property
    def state(self) -> SchedulerState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: SchedulerState) -> bool:
        """Check if a transition to the given state is valid.

        Args:
            to_state: The target state.

        Returns:
            True if the transition is valid, False otherwise.
        """
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: SchedulerState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            SchedulerStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise SchedulerStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.info(
            "scheduler_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def restore(self, state: SchedulerState) -> None:
        """Align with the persisted run after a restart."""
        if state == self._state:
            return
        self._log.info(
            "scheduler_state_restored",
            from_state=self._state.name,
            to_state=state.name,
        )
        self._state = state

    def is_idle(self) -> bool:
        """Check if no run is active."""
        return self._state == SchedulerState.IDLE

    def is_running(self) -> bool:
        """Check if a run is processing chunks."""
        return self._state == SchedulerState.RUNNING
