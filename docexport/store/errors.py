"""Domain exceptions for the progress store.

This module defines a hierarchy of exceptions for the store layer,
separating infrastructure errors (database issues) from data errors
(persisted values that can no longer be decoded).
"""


class StateStoreError(Exception):
    """Base exception for all store errors.

    All exceptions raised by the store layer inherit from this class
    to enable consistent error handling at the scheduler level.
    """


class ConnectionError(StateStoreError):
    """Raised when the database connection fails or is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class MigrationError(StateStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")


class StoreCorruptionError(StateStoreError):
    """Raised when a persisted value cannot be decoded.

    Callers in the progress layer catch this and fall back to an empty
    or default value, trading loss of that state for self-healing.
    """

    def __init__(self, key: str, reason: str) -> None:
        """Initialize the corruption error.

        Args:
            key: The store key holding the undecodable value.
            reason: Why decoding failed.
        """
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt value for key '{key}': {reason}")
