"""Exceptions for the Notion source layer."""

from docexport.source.models import SourceErrorClass


class SourceError(Exception):
    """Base exception for source listing and fetching failures."""

    def __init__(
        self,
        message: str,
        error_class: SourceErrorClass = SourceErrorClass.UNKNOWN,
        status_code: int | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            error_class: Classification of the failure.
            status_code: HTTP status code if available.
        """
        self.error_class = error_class
        self.status_code = status_code
        super().__init__(message)


class TransientFetchError(SourceError):
    """Listing or fetching failed in a way a later attempt may not.

    Covers network failures, exhausted retries and authentication errors.
    """


class SourceRequestError(SourceError):
    """The source rejected the request (non-retryable 4xx)."""
