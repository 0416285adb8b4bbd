"""Local copies of images referenced by exported pages.

Notion-hosted image URLs are signed and expire within hours, so exported
documents link to downloaded copies in a shared ``images/`` directory
under the output directory. Files are keyed so the same image maps to the
same file across runs:

- external images: ``external_<hash of the URL>``
- Notion-hosted files: ``notion_<file id>``, taken from the URL path so a
  re-signed URL still hits the cached copy
"""

import base64
import hashlib
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog

from docexport.convert.io import AtomicWriter
from docexport.source.constants import HTTP_STATUS_OK_MAX, HTTP_STATUS_OK_MIN


logger = structlog.get_logger()

IMAGE_DIR_NAME = "images"
EXTERNAL_HASH_CHARS = 16
MIN_IMAGE_BYTES = 100
MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MB
CACHE_REFRESH_HOURS = 24
DEFAULT_KEEP_DAYS = 30
DEFAULT_EXTENSION = "jpg"

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

_MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}

_URL_EXTENSIONS: dict[str, str] = {
    "jpg": "jpg",
    "jpeg": "jpg",
    "jpe": "jpg",
    "png": "png",
    "gif": "gif",
    "webp": "webp",
    "svg": "svg",
    "bmp": "bmp",
    "tif": "tiff",
    "tiff": "tiff",
    "avif": "avif",
    "heic": "heic",
    "heif": "heif",
}


def _without_query(url: str) -> str:
    # Signed URLs carry credentials in the query string
    return urlsplit(url)._replace(query="", fragment="").geturl()


def image_key(payload: dict[str, Any]) -> tuple[str, str] | None:
    """Get the download URL and cache file stem of an image block.

    Args:
        payload: The ``image`` payload of a Notion block.

    Returns:
        Tuple of (url, stem), or None for unsupported or URL-less images.
    """
    image_type = payload.get("type")
    if image_type not in ("external", "file"):
        return None

    url = str((payload.get(image_type) or {}).get("url", ""))
    if not url:
        return None

    if image_type == "external":
        digest = hashlib.md5(url.encode("utf-8"), usedforsecurity=False).digest()
        encoded = _NON_ALNUM.sub("", base64.urlsafe_b64encode(digest).decode("ascii"))
        return url, f"external_{encoded[:EXTERNAL_HASH_CHARS]}"

    # .../<workspace>/<file uuid>/<file name>; the name alone is not unique
    segments = [segment for segment in urlsplit(url).path.split("/") if segment]
    if not segments:
        return None
    file_id = "_".join(segments[-2:])
    return url, f"notion_{_NON_ALNUM.sub('_', file_id)}"


def extension_for(content_type: str, url: str) -> str:
    """Pick a file extension from the response type, then the URL."""
    mime = content_type.split(";")[0].strip().lower()
    if mime in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime]

    name = urlsplit(url).path.rsplit("/", 1)[-1]
    if "." in name:
        suffix = name.rsplit(".", 1)[-1].lower()
        if suffix in _URL_EXTENSIONS:
            return _URL_EXTENSIONS[suffix]
    return DEFAULT_EXTENSION


class ImageStore:
    """Downloads and caches page images under ``<output_dir>/images``.

    A cached copy younger than CACHE_REFRESH_HOURS is reused without a
    request. Older copies are refreshed, and kept as a fallback when the
    refresh fails. Download failures never raise: the caller falls back to
    the remote URL.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the image store.

        Args:
            output_dir: Export output directory.
            timeout_seconds: Per-download timeout.
            transport: Optional httpx transport (for tests).
            clock: Optional clock returning aware UTC datetimes.
        """
        self._dir = output_dir / IMAGE_DIR_NAME
        self._writer = AtomicWriter(output_dir)
        self._clock = clock or (lambda: datetime.now(UTC))
        # No Notion credentials: file URLs are pre-signed
        self._client = httpx.Client(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )
        self._log = logger.bind(component="images")

    @property
    def directory(self) -> Path:
        """Get the shared image directory."""
        return self._dir

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> "ImageStore":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def localize(self, payload: dict[str, Any]) -> Path | None:
        """Get a local copy of an image block's file.

        Args:
            payload: The ``image`` payload of a Notion block.

        Returns:
            Path of the local copy, or None if no copy is available.
        """
        key = image_key(payload)
        if key is None:
            self._log.info("image_unsupported", image_type=payload.get("type"))
            return None
        url, stem = key

        cached = self._find_cached(stem)
        if cached is not None and self._is_fresh(cached):
            self._log.debug("image_cache_hit", file=cached.name)
            return cached

        downloaded = self._download(url, stem)
        if downloaded is not None:
            return downloaded
        if cached is not None:
            self._log.info("image_stale_copy_used", file=cached.name)
        return cached

    def prune(self, days_to_keep: int = DEFAULT_KEEP_DAYS) -> int:
        """Delete cached images not refreshed within a number of days.

        Args:
            days_to_keep: Age in days after which a file is removed.

        Returns:
            Number of files removed.
        """
        if not self._dir.is_dir():
            return 0

        cutoff = self._clock() - timedelta(days=days_to_keep)
        removed = 0
        for path in self._dir.iterdir():
            if path.is_file() and self._modified_at(path) < cutoff:
                path.unlink(missing_ok=True)
                removed += 1

        self._log.info("image_cache_pruned", removed=removed, days_to_keep=days_to_keep)
        return removed

    def _find_cached(self, stem: str) -> Path | None:
        if not self._dir.is_dir():
            return None
        for path in sorted(self._dir.glob(f"{stem}.*")):
            if path.suffix != ".tmp":
                return path
        return None

    def _modified_at(self, path: Path) -> datetime:
        return datetime.fromtimestamp(path.stat().st_mtime, UTC)

    def _is_fresh(self, path: Path) -> bool:
        age = self._clock() - self._modified_at(path)
        return age < timedelta(hours=CACHE_REFRESH_HOURS)

    def _download(self, url: str, stem: str) -> Path | None:
        log = self._log.bind(url=_without_query(url), stem=stem)

        try:
            response = self._client.get(url)
        except httpx.HTTPError as e:
            log.warning("image_download_failed", error=str(e))
            return None

        if not HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
            log.warning("image_download_failed", status_code=response.status_code)
            return None

        content_type = response.headers.get("content-type", "")
        body = response.content
        if (
            not content_type.lower().startswith("image/")
            or not MIN_IMAGE_BYTES <= len(body) <= MAX_IMAGE_BYTES
        ):
            log.warning("image_invalid", content_type=content_type, size=len(body))
            return None

        target = self._dir / f"{stem}.{extension_for(content_type, url)}"
        # A changed content type would leave a copy under another extension
        for previous in self._dir.glob(f"{stem}.*"):
            if previous != target:
                previous.unlink(missing_ok=True)

        written = self._writer.write_bytes(target, body)
        log.info("image_downloaded", path=written.path, bytes=written.bytes_written)
        return target
