"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    notion_api_key: str | None = Field(default=None, validation_alias="NOTION_API_KEY")
    notion_database_id: str | None = Field(
        default=None, validation_alias="NOTION_DATABASE_ID"
    )
    export_output_dir: Path | None = Field(
        default=None, validation_alias="EXPORT_OUTPUT_DIR"
    )
    export_state_path: Path | None = Field(
        default=None, validation_alias="EXPORT_STATE_PATH"
    )

    def overrides(self) -> dict[str, object]:
        """Return the config fields set through the environment."""
        values: dict[str, object] = {}
        if self.notion_database_id:
            values["source"] = {"database_id": self.notion_database_id}
        if self.export_output_dir is not None:
            values["output_dir"] = self.export_output_dir
        if self.export_state_path is not None:
            values["state_path"] = self.export_state_path
        return values


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
