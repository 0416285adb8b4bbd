"""Resumable, incremental batch export of a document collection."""

__version__ = "0.1.0"
