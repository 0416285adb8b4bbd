"""Key/value persistence protocol and an in-memory implementation."""

from typing import Protocol, runtime_checkable

from docexport.store.metrics import StoreMetrics


@runtime_checkable
class PersistentStore(Protocol):
    """Durable string-keyed store.

    Single-key operations only: there is no multi-key atomicity and no
    transaction spanning several calls. ``compare_and_set`` is the one
    conditional primitive, used for the run lease.
    """

    def get(self, key: str) -> str | None:
        """Get the value for a key, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Set the value for a key."""
        ...

    def delete(self, key: str) -> None:
        """Delete a key (no-op if absent)."""
        ...

    def compare_and_set(
        self, key: str, expected: str | None, new: str | None
    ) -> bool:
        """Replace a value only if it currently equals ``expected``.

        Args:
            key: The key to update.
            expected: Expected current value (None means absent).
            new: New value (None deletes the key).

        Returns:
            True if the swap happened.
        """
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store for tests and dry runs.

    Not durable: state is lost with the process.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Optional initial contents.
        """
        self._data: dict[str, str] = dict(initial or {})
        self._metrics = StoreMetrics.get_instance()

    @property
    def data(self) -> dict[str, str]:
        """Get a copy of the stored contents."""
        return dict(self._data)

    def get(self, key: str) -> str | None:
        """Get the value for a key, or None if absent."""
        self._metrics.record_read()
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Set the value for a key."""
        self._metrics.record_write()
        self._data[key] = value

    def delete(self, key: str) -> None:
        """Delete a key (no-op if absent)."""
        self._metrics.record_delete()
        self._data.pop(key, None)

    def compare_and_set(
        self, key: str, expected: str | None, new: str | None
    ) -> bool:
        """Replace a value only if it currently equals ``expected``."""
        if self._data.get(key) != expected:
            self._metrics.record_cas_conflict()
            return False
        if new is None:
            self.delete(key)
        else:
            self.set(key, new)
        return True
