"""Configuration models for the exporter."""

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from docexport.source.models import RetryPolicy


DEFAULT_STATE_PATH = Path("state/docexport.db")


class SourceConfig(BaseModel):
    """Configuration for the Notion source.

    The API key is read from the environment only and never stored here.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    database_id: str | None = Field(default=None, description="Notion database ID")
    page_size: Annotated[int, Field(ge=1, le=100)] = 100
    timeout_seconds: Annotated[float, Field(ge=1.0, le=300.0)] = 30.0
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class ExportConfig(BaseModel):
    """Immutable export configuration threaded into every entry point."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    chunk_size: Annotated[
        int, Field(ge=1, le=100, description="Items processed per tick")
    ] = 5
    continuation_delay_seconds: Annotated[
        float, Field(ge=0.0, description="Delay before the next tick")
    ] = 60.0
    result_log_max_rows: Annotated[
        int, Field(ge=1, description="Result log row ceiling")
    ] = 1000
    lease_ttl_seconds: Annotated[
        float, Field(gt=0.0, description="Run lease lifetime")
    ] = 3600.0
    start_lease_ttl_seconds: Annotated[
        float,
        Field(gt=0.0, description="Run lease lifetime while a start lists the source"),
    ] = 600.0
    source: SourceConfig = Field(default_factory=SourceConfig)
    output_dir: Path | None = Field(
        default=None, description="Directory receiving exported documents"
    )
    state_path: Path = Field(
        default=DEFAULT_STATE_PATH, description="SQLite progress database"
    )
    download_images: bool = Field(
        default=True, description="Store local copies of page images"
    )
