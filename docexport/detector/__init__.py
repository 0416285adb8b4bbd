"""Change detection for incremental exports."""

from docexport.detector.differ import ChangeDetector, Partition, parse_timestamp


__all__ = ["ChangeDetector", "Partition", "parse_timestamp"]
