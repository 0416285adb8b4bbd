"""Exceptions for per-item processing."""


class ItemProcessingError(Exception):
    """Raised when one item fails a processing stage.

    Always captured by the processor as a Fail result.
    """

    def __init__(self, item_id: str, stage: str, message: str) -> None:
        """Initialize the error.

        Args:
            item_id: The failing item.
            stage: Stage that failed (fetch, upsert, record).
            message: Human-readable error message.
        """
        self.item_id = item_id
        self.stage = stage
        super().__init__(message)
