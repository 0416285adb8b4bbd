"""Notion source client: database listing and page content fetching."""

from docexport.source.errors import SourceError, SourceRequestError, TransientFetchError
from docexport.source.metrics import SourceMetrics
from docexport.source.models import (
    Block,
    ContentTree,
    RetryPolicy,
    SourceErrorClass,
)
from docexport.source.notion import NotionSourceClient, extract_title, page_to_work_item


__all__ = [
    # Errors
    "SourceError",
    "SourceRequestError",
    "TransientFetchError",
    # Metrics
    "SourceMetrics",
    # Models
    "Block",
    "ContentTree",
    "RetryPolicy",
    "SourceErrorClass",
    # Client
    "NotionSourceClient",
    "extract_title",
    "page_to_work_item",
]
