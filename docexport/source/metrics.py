"""Metrics collection for the Notion source client."""

from dataclasses import dataclass, field
from typing import ClassVar

from docexport.source.models import SourceErrorClass


@dataclass
class SourceMetrics:
    """Metrics for source requests.

    Attributes:
        requests_total: Number of HTTP requests sent.
        retries_total: Number of retried requests.
        pages_listed_total: Database pages listed.
        blocks_fetched_total: Blocks fetched across all pages.
        failures_by_class: Failed requests per error class.
    """

    requests_total: int = 0
    retries_total: int = 0
    pages_listed_total: int = 0
    blocks_fetched_total: int = 0
    failures_by_class: dict[str, int] = field(default_factory=dict)

    _instance: ClassVar["SourceMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "SourceMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self) -> None:
        """Record a sent request."""
        self.requests_total += 1

    def record_retry(self) -> None:
        """Record a retry."""
        self.retries_total += 1

    def record_pages(self, count: int) -> None:
        """Record listed pages."""
        self.pages_listed_total += count

    def record_blocks(self, count: int) -> None:
        """Record fetched blocks."""
        self.blocks_fetched_total += count

    def record_failure(self, error_class: SourceErrorClass) -> None:
        """Record a failed request by class."""
        key = error_class.value
        self.failures_by_class[key] = self.failures_by_class.get(key, 0) + 1

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary."""
        return {
            "requests_total": self.requests_total,
            "retries_total": self.retries_total,
            "pages_listed_total": self.pages_listed_total,
            "blocks_fetched_total": self.blocks_fetched_total,
            "failures_by_class": dict(self.failures_by_class),
        }
