"""Data models for the Notion source layer."""

import random
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field


# A Notion block as returned by the API, with nested blocks under "children"
Block = dict[str, Any]
ContentTree = list[Block]


class SourceErrorClass(str, Enum):
    """Classification of source errors for metrics and retry decisions.

    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection
    - AUTH: 401/403, the integration key is invalid or lacks access
    - HTTP_4XX: Non-retryable client error (except 429)
    - HTTP_5XX: Retryable server error
    - RATE_LIMITED: 429 Too Many Requests
    - UNKNOWN: Unclassified error
    """

    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    AUTH = "AUTH"
    HTTP_4XX = "HTTP_4XX"
    HTTP_5XX = "HTTP_5XX"
    RATE_LIMITED = "RATE_LIMITED"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CLASSES = frozenset(
    {
        SourceErrorClass.NETWORK_TIMEOUT,
        SourceErrorClass.CONNECTION_ERROR,
        SourceErrorClass.HTTP_5XX,
        SourceErrorClass.RATE_LIMITED,
    }
)


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Uses exponential backoff: delay = base_delay_ms * (exponential_base ^ attempt)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    base_delay_ms: Annotated[int, Field(ge=0, le=60000)] = 1000
    max_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 30000
    exponential_base: Annotated[float, Field(ge=1.0, le=5.0)] = 2.0
    jitter_factor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1

    def should_retry(self, error_class: SourceErrorClass, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            error_class: Classification of the failure.
            attempt: Current attempt number (0-indexed).

        Returns:
            True if the request should be retried.
        """
        if attempt >= self.max_retries:
            return False
        return error_class in RETRYABLE_CLASSES

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next retry attempt.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in milliseconds.
        """
        delay = self.base_delay_ms * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay_ms)

        jitter = delay * self.jitter_factor * random.random()  # noqa: S311
        return int(delay + jitter)
