"""Persisted progress store for export runs.

This module provides durable storage for:
- The single active run (cursor, item queue, per-chunk results)
- Per-item export state used by change detection
- The run lease guarding single-writer ownership
- The bounded result log, status panel and run history
"""

from docexport.store.errors import (
    ConnectionError,
    MigrationError,
    StateStoreError,
    StoreCorruptionError,
)
from docexport.store.kv import InMemoryKeyValueStore, PersistentStore
from docexport.store.metrics import StoreMetrics
from docexport.store.models import (
    ItemStateEntry,
    ProcessingResult,
    ProcessingStatus,
    QueueEntry,
    ResultRow,
    RunLease,
    RunRecord,
    RunState,
    WorkItem,
)
from docexport.store.progress import ProgressStore
from docexport.store.store import StateStore


__all__ = [
    # Errors
    "ConnectionError",
    "MigrationError",
    "StateStoreError",
    "StoreCorruptionError",
    # Key/value
    "InMemoryKeyValueStore",
    "PersistentStore",
    # Metrics
    "StoreMetrics",
    # Models
    "ItemStateEntry",
    "ProcessingResult",
    "ProcessingStatus",
    "QueueEntry",
    "ResultRow",
    "RunLease",
    "RunRecord",
    "RunState",
    "WorkItem",
    # Progress
    "ProgressStore",
    # Store
    "StateStore",
]
