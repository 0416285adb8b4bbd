"""Atomic file writing for exported documents and images."""

import hashlib
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger()


class WrittenFile(BaseModel):
    """A file written under the output directory."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(description="Path relative to the output directory")
    absolute_path: str
    bytes_written: int = Field(ge=0)
    sha256: str


class AtomicWriter:
    """Writes files through a temporary file and a rename.

    Readers see either the complete old file or the complete new file,
    never a partial write.
    """

    def __init__(self, base_dir: Path) -> None:
        """Initialize the atomic writer.

        Args:
            base_dir: Base directory for relative path calculation.
        """
        self._base_dir = base_dir
        self._log = logger.bind(component="atomic_writer")

    def write(self, path: Path, content: str) -> WrittenFile:
        """Write text to a file atomically.

        Args:
            path: Target file path (absolute).
            content: Content to write (encoded as UTF-8).

        Returns:
            WrittenFile with path, checksum and size.
        """
        return self.write_bytes(path, content.encode("utf-8"))

    def write_bytes(self, path: Path, content_bytes: bytes) -> WrittenFile:
        """Write raw bytes to a file atomically.

        Args:
            path: Target file path (absolute).
            content_bytes: Content to write.

        Returns:
            WrittenFile with path, checksum and size.
        """
        sha256 = hashlib.sha256(content_bytes).hexdigest()

        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        temp_path.write_bytes(content_bytes)
        temp_path.replace(path)

        try:
            relative_path = path.resolve().relative_to(self._base_dir.resolve()).as_posix()
        except ValueError:
            relative_path = str(path)

        self._log.debug(
            "file_written",
            path=relative_path,
            bytes=len(content_bytes),
            sha256=sha256[:12],
        )

        return WrittenFile(
            path=relative_path,
            absolute_path=str(path),
            bytes_written=len(content_bytes),
            sha256=sha256,
        )
