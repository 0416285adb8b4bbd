"""Configuration loader: YAML file plus environment overrides."""

import hashlib
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from docexport.config.errors import ConfigError
from docexport.config.models import ExportConfig
from docexport.settings import AppSettings, get_settings


logger = structlog.get_logger()


def _merge(base: dict[str, object], overrides: dict[str, object]) -> dict[str, object]:
    """Merge overrides into base, recursing into nested mappings."""
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Loads and validates the export configuration.

    Values come from an optional YAML file, then environment settings
    (``NOTION_DATABASE_ID``, ``EXPORT_OUTPUT_DIR``, ``EXPORT_STATE_PATH``)
    override them. The result is an immutable ExportConfig.
    """

    def __init__(self, settings: AppSettings | None = None) -> None:
        """Initialize the loader.

        Args:
            settings: Environment settings (read from the environment if None).
        """
        self._settings = settings or get_settings()
        self._file_checksum: str | None = None
        self._log = logger.bind(component="config")

    @property
    def settings(self) -> AppSettings:
        """Get the environment settings."""
        return self._settings

    @property
    def file_checksum(self) -> str | None:
        """Get the SHA-256 checksum of the loaded file, if any."""
        return self._file_checksum

    @property
    def api_key(self) -> str | None:
        """Get the Notion API key."""
        return self._settings.notion_api_key

    def _load_yaml_file(self, file_path: Path) -> dict[str, object]:
        """Load a YAML file and record its checksum.

        Raises:
            ConfigError: If the file is missing or not valid YAML.
        """
        try:
            content_bytes = file_path.read_bytes()
        except FileNotFoundError as e:
            self._log.error("config_file_not_found", file_path=str(file_path))
            raise ConfigError(
                errors=[{"loc": "file", "msg": str(e), "type": "file_not_found"}],
                source=str(file_path),
            ) from e

        self._file_checksum = hashlib.sha256(content_bytes).hexdigest()
        try:
            parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
        except yaml.YAMLError as e:
            self._log.error("config_yaml_parse_error", error=str(e))
            raise ConfigError(
                errors=[{"loc": "yaml", "msg": str(e), "type": "yaml_parse_error"}],
                source=str(file_path),
            ) from e

        if not isinstance(parsed, dict):
            raise ConfigError(
                errors=[
                    {
                        "loc": "yaml",
                        "msg": "top level must be a mapping",
                        "type": "dict_type",
                    }
                ],
                source=str(file_path),
            )
        return parsed

    def load(
        self, config_path: Path | None = None, *, require_source: bool = True
    ) -> ExportConfig:
        """Load and validate the configuration.

        Args:
            config_path: Optional YAML config file.
            require_source: Whether the Notion credentials and output
                directory must be present (false for read-only commands).

        Returns:
            Validated ExportConfig.

        Raises:
            ConfigError: If the file is invalid or required settings are missing.
        """
        data: dict[str, object] = {}
        if config_path is not None:
            self._log.info("loading_config_file", file_path=str(config_path))
            data = self._load_yaml_file(config_path)

        data = _merge(data, self._settings.overrides())

        try:
            config = ExportConfig.model_validate(data)
        except ValidationError as e:
            errors = [
                {
                    "loc": ".".join(str(part) for part in err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors()
            ]
            self._log.error("config_validation_failed", error_count=len(errors))
            raise ConfigError(
                errors=errors,
                source=str(config_path) if config_path else None,
            ) from e

        if require_source:
            missing = self.missing_settings(config)
            if missing:
                self._log.error("config_settings_missing", missing=missing)
                raise ConfigError(missing=missing)

        self._log.info(
            "config_ready",
            chunk_size=config.chunk_size,
            state_path=str(config.state_path),
            file_sha256=self._file_checksum,
        )
        return config

    def missing_settings(self, config: ExportConfig) -> list[str]:
        """List the required settings that are not set."""
        missing: list[str] = []
        if not self.api_key:
            missing.append("NOTION_API_KEY")
        if not config.source.database_id:
            missing.append("NOTION_DATABASE_ID")
        if config.output_dir is None:
            missing.append("EXPORT_OUTPUT_DIR")
        return missing
