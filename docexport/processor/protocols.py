"""Collaborator interfaces consumed by the item processor."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from docexport.source.models import ContentTree
from docexport.store.models import WorkItem


class UpsertOutcome(BaseModel):
    """Result of writing one document to the artifact store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool = Field(description="Whether the document was written")
    message: str = Field(default="", description="Human-readable detail")
    artifact_ref: str | None = Field(
        default=None, description="Reference to the written artifact"
    )


@runtime_checkable
class SourceClient(Protocol):
    """Lists and fetches source documents."""

    def list_work_items(self) -> list[WorkItem]:
        """List every exportable item.

        Raises:
            TransientFetchError: On network or auth failure.
        """
        ...

    def fetch_content(self, item_id: str) -> ContentTree:
        """Fetch the content of one item."""
        ...


@runtime_checkable
class ConversionEngine(Protocol):
    """Converts content into a document and upserts it."""

    def upsert(
        self,
        content: ContentTree,
        title: str,
        existing_artifact_ref: str | None,
    ) -> UpsertOutcome:
        """Create or update the document for one item.

        Args:
            content: Fetched content.
            title: Document title.
            existing_artifact_ref: Artifact to update in place, if known.

        Returns:
            The upsert outcome.
        """
        ...
