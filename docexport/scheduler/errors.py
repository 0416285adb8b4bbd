"""Exceptions for the batch scheduler."""


class SchedulerError(Exception):
    """Base exception for run-level scheduler errors."""


class RunAlreadyActiveError(SchedulerError):
    """Raised when start() finds a live run holding the lease."""

    def __init__(self, holder: str | None) -> None:
        """Initialize the error.

        Args:
            holder: Token (run ID) of the active run, if known.
        """
        self.holder = holder
        who = f" ({holder})" if holder else ""
        super().__init__(
            f"An export run is already active{who}; cancel it or wait for it to finish"
        )
