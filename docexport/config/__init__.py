"""Configuration loading and validation module."""

from docexport.config.errors import ConfigError
from docexport.config.loader import ConfigLoader
from docexport.config.models import ExportConfig, SourceConfig


__all__ = [
    "ConfigError",
    "ConfigLoader",
    "ExportConfig",
    "SourceConfig",
]
