"""Markdown conversion engine writing exported documents to disk."""

import re
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, PackageLoader

from docexport.convert.blocks import BlockRenderer, ImageResolver
from docexport.convert.images import ImageStore
from docexport.convert.io import AtomicWriter
from docexport.processor.protocols import UpsertOutcome
from docexport.source.models import ContentTree


logger = structlog.get_logger()

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
DEFAULT_FILENAME = "Untitled"
DOCUMENT_SUFFIX = ".md"


def sanitize_filename(title: str) -> str:
    """Make a title safe to use as a file name.

    Replaces ``\\ / : * ? " < > |`` with underscores.
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", title).strip()
    if cleaned in ("", ".", ".."):
        return DEFAULT_FILENAME
    return cleaned


class MarkdownConverter:
    """Converts Notion block trees into Markdown files.

    The artifact reference is the file path relative to the output
    directory. An existing artifact is updated in place; otherwise a file
    named after the title is created, replacing any same-named file.
    With an image store, image blocks link to local copies relative to the
    document.
    """

    def __init__(
        self,
        output_dir: Path,
        clock: Callable[[], datetime] | None = None,
        images: ImageStore | None = None,
    ) -> None:
        """Initialize the converter.

        Args:
            output_dir: Directory receiving exported documents.
            clock: Optional clock returning aware UTC datetimes.
            images: Optional image store for local image copies.
        """
        self._output_dir = output_dir
        self._clock = clock or (lambda: datetime.now(UTC))
        self._images = images
        self._writer = AtomicWriter(output_dir)
        self._env = Environment(
            loader=PackageLoader("docexport.convert", "templates"),
            autoescape=False,  # noqa: S701
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._log = logger.bind(component="converter", output_dir=str(output_dir))

    def render(
        self,
        content: ContentTree,
        title: str,
        image_resolver: ImageResolver | None = None,
    ) -> str:
        """Render a full Markdown document.

        Args:
            content: Top-level blocks.
            title: Document title.
            image_resolver: Optional mapping of image blocks to local links.

        Returns:
            Document text.
        """
        template = self._env.get_template("document.md.j2")
        return template.render(
            title=title,
            exported_at=self._clock().isoformat(),
            body=BlockRenderer(image_resolver).render(content),
        )

    def _image_resolver(self, document_dir: Path) -> ImageResolver | None:
        """Build a resolver linking local images relative to a document."""
        images = self._images
        if images is None:
            return None

        def resolve(payload: dict[str, Any]) -> str | None:
            local = images.localize(payload)
            if local is None:
                return None
            return local.resolve().relative_to(
                document_dir.resolve(), walk_up=True
            ).as_posix()

        return resolve

    def _resolve_existing(self, artifact_ref: str | None) -> Path | None:
        """Get the path of an existing artifact inside the output directory."""
        if not artifact_ref:
            return None
        root = self._output_dir.resolve()
        path = (self._output_dir / artifact_ref).resolve()
        if not path.is_relative_to(root) or not path.is_file():
            return None
        return path

    def upsert(
        self,
        content: ContentTree,
        title: str,
        existing_artifact_ref: str | None,
    ) -> UpsertOutcome:
        """Write the document for one item.

        Args:
            content: Fetched blocks.
            title: Document title.
            existing_artifact_ref: Previously written artifact, if any.

        Returns:
            Outcome with the artifact reference.
        """
        existing = self._resolve_existing(existing_artifact_ref)

        if existing is not None:
            target = existing
            message = "Updated existing document"
        else:
            if existing_artifact_ref:
                self._log.info(
                    "artifact_missing",
                    artifact_ref=existing_artifact_ref,
                    title=title,
                )
            target = self._output_dir / f"{sanitize_filename(title)}{DOCUMENT_SUFFIX}"
            message = (
                "Replaced same-named document" if target.exists() else "Created document"
            )

        document = self.render(content, title, self._image_resolver(target.parent))
        written = self._writer.write(target, document)
        self._log.info(
            "document_written",
            artifact_ref=written.path,
            bytes=written.bytes_written,
            message=message,
        )
        return UpsertOutcome(success=True, message=message, artifact_ref=written.path)
