"""Shared pytest fixtures."""

from collections.abc import Generator

import pytest

from docexport.scheduler.metrics import SchedulerMetrics
from docexport.source.metrics import SourceMetrics
from docexport.store.metrics import StoreMetrics


@pytest.fixture(autouse=True)
def reset_metrics() -> Generator[None]:
    """Give every test fresh metrics singletons."""
    StoreMetrics.reset()
    SchedulerMetrics.reset()
    SourceMetrics.reset()
    yield
    StoreMetrics.reset()
    SchedulerMetrics.reset()
    SourceMetrics.reset()
