"""Notion REST API client with pagination and retries."""

import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from docexport.source.constants import (
    FALLBACK_TITLE_ID_CHARS,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    HTTP_STATUS_UNAUTHORIZED,
    MAX_BLOCK_DEPTH,
    MAX_RETRY_AFTER_SECONDS,
    NOTION_API_BASE,
    NOTION_VERSION,
)
from docexport.source.errors import SourceError, SourceRequestError, TransientFetchError
from docexport.source.metrics import SourceMetrics
from docexport.source.models import Block, ContentTree, RetryPolicy, SourceErrorClass
from docexport.store.models import WorkItem


logger = structlog.get_logger()


def extract_title(page: dict[str, Any]) -> str:
    """Get a page title from its first non-empty ``title`` property.

    Falls back to ``Page_<first 8 hex chars of the id>``.

    Args:
        page: Notion page object.

    Returns:
        The page title.
    """
    properties = page.get("properties") or {}
    for prop in properties.values():
        if not isinstance(prop, dict) or prop.get("type") != "title":
            continue
        fragments = prop.get("title") or []
        title = "".join(fragment.get("plain_text", "") for fragment in fragments)
        if title:
            return title

    compact_id = str(page.get("id", "")).replace("-", "")
    return f"Page_{compact_id[:FALLBACK_TITLE_ID_CHARS]}"


def page_to_work_item(page: dict[str, Any]) -> WorkItem:
    """Convert a Notion page object into a WorkItem."""
    return WorkItem(
        id=str(page["id"]),
        last_modified_at=page.get("last_edited_time"),
        title=extract_title(page),
    )


class NotionSourceClient:
    """Lists database pages and fetches their block trees.

    Requests are retried with exponential backoff on timeouts, connection
    errors, 429 and 5xx responses. Authentication failures are raised as
    TransientFetchError so a run attempt aborts cleanly and can be retried
    once the key is fixed.
    """

    def __init__(  # noqa: PLR0913
        self,
        api_key: str,
        database_id: str,
        *,
        page_size: int = 100,
        timeout_seconds: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Notion integration secret.
            database_id: Database to export.
            page_size: Page size for paginated requests (max 100).
            timeout_seconds: Per-request timeout.
            retry_policy: Retry behavior (defaults to RetryPolicy()).
            transport: Optional httpx transport (for tests).
        """
        self._database_id = database_id
        self._page_size = page_size
        self._policy = retry_policy or RetryPolicy()
        self._metrics = SourceMetrics.get_instance()
        self._client = httpx.Client(
            base_url=NOTION_API_BASE,
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
        )
        self._log = logger.bind(component="source", database_id=database_id)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> "NotionSourceClient":
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

    # ===== SourceClient =====

    def list_work_items(self) -> list[WorkItem]:
        """List every page of the database as a WorkItem.

        Returns:
            Work items in database query order.

        Raises:
            TransientFetchError: On network, auth or exhausted-retry failures.
            SourceRequestError: If Notion rejects the query.
        """
        pages: list[dict[str, Any]] = []
        cursor: str | None = None

        while True:
            body: dict[str, Any] = {"page_size": self._page_size}
            if cursor:
                body["start_cursor"] = cursor
            data = self._request(
                "POST", f"/databases/{self._database_id}/query", json=body
            )
            pages.extend(data.get("results", []))
            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        self._metrics.record_pages(len(pages))
        self._log.info("database_listed", page_count=len(pages))
        return [page_to_work_item(page) for page in pages]

    def fetch_content(self, item_id: str) -> ContentTree:
        """Fetch the block tree of a page.

        Blocks with children get them under a ``children`` key, down to a
        fixed depth.

        Args:
            item_id: Notion page ID.

        Returns:
            Top-level blocks of the page.
        """
        blocks = self._fetch_children(item_id, depth=0)
        self._log.debug("page_content_fetched", item_id=item_id, blocks=len(blocks))
        return blocks

    def _fetch_children(self, block_id: str, depth: int) -> list[Block]:
        blocks: list[Block] = []
        cursor: str | None = None

        while True:
            params: dict[str, Any] = {"page_size": self._page_size}
            if cursor:
                params["start_cursor"] = cursor
            data = self._request("GET", f"/blocks/{block_id}/children", params=params)
            blocks.extend(data.get("results", []))
            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        self._metrics.record_blocks(len(blocks))

        if depth + 1 < MAX_BLOCK_DEPTH:
            for block in blocks:
                # child_page content belongs to another page
                if block.get("has_children") and block.get("type") != "child_page":
                    block["children"] = self._fetch_children(block["id"], depth + 1)
        return blocks

    # ===== Transport =====

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request with retry logic.

        Returns:
            Decoded JSON body.

        Raises:
            TransientFetchError: On retryable failures once retries are
                exhausted, and on authentication failures.
            SourceRequestError: On other 4xx responses.
        """
        log = self._log.bind(method=method, path=path)
        last_error: SourceError | None = None

        for attempt in range(self._policy.max_retries + 1):
            if attempt > 0:
                delay_ms = self._policy.get_delay_ms(attempt - 1)
                self._metrics.record_retry()
                log.debug("retry_attempt", attempt=attempt, delay_ms=delay_ms)
                time.sleep(delay_ms / 1000.0)

            retry_after: int | None = None
            try:
                self._metrics.record_request()
                response = self._client.request(method, path, json=json, params=params)
            except httpx.TimeoutException as e:
                last_error = TransientFetchError(
                    f"Request timed out: {e}", SourceErrorClass.NETWORK_TIMEOUT
                )
            except httpx.TransportError as e:
                last_error = TransientFetchError(
                    f"Connection failed: {e}", SourceErrorClass.CONNECTION_ERROR
                )
            else:
                if HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX:
                    payload: dict[str, Any] = response.json()
                    return payload
                last_error = self._classify_http_error(response)
                retry_after = self._parse_retry_after(
                    response.headers.get("retry-after")
                )

            self._metrics.record_failure(last_error.error_class)
            if not self._policy.should_retry(last_error.error_class, attempt):
                break

            if last_error.error_class == SourceErrorClass.RATE_LIMITED and retry_after:
                log.info("rate_limited", retry_after=retry_after, attempt=attempt)
                time.sleep(min(retry_after, MAX_RETRY_AFTER_SECONDS))

        if last_error is None:
            raise TransientFetchError("No request was attempted", SourceErrorClass.UNKNOWN)
        log.warning(
            "source_request_failed",
            error_class=last_error.error_class.value,
            status_code=last_error.status_code,
            error=str(last_error),
        )
        if isinstance(last_error, SourceRequestError):
            raise last_error
        raise TransientFetchError(
            str(last_error), last_error.error_class, last_error.status_code
        )

    def _classify_http_error(self, response: httpx.Response) -> SourceError:
        """Classify a non-2xx response."""
        status_code = response.status_code
        detail = self._error_detail(response)

        if status_code in (HTTP_STATUS_UNAUTHORIZED, HTTP_STATUS_FORBIDDEN):
            return TransientFetchError(
                f"Notion rejected the credentials ({status_code}): {detail}. "
                "Check NOTION_API_KEY and that the integration is shared with "
                "the database.",
                SourceErrorClass.AUTH,
                status_code,
            )

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            return TransientFetchError(
                "Rate limited (429 Too Many Requests)",
                SourceErrorClass.RATE_LIMITED,
                status_code,
            )

        if HTTP_STATUS_SERVER_ERROR_MIN <= status_code < HTTP_STATUS_SERVER_ERROR_MAX:
            return TransientFetchError(
                f"Server error ({status_code}): {detail}",
                SourceErrorClass.HTTP_5XX,
                status_code,
            )

        return SourceRequestError(
            f"Client error ({status_code}): {detail}",
            SourceErrorClass.HTTP_4XX,
            status_code,
        )

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text[:200]

    def _parse_retry_after(self, value: str | None) -> int | None:
        """Parse Retry-After header value.

        Args:
            value: Header value (seconds or HTTP date).

        Returns:
            Seconds to wait, or None if not parseable.
        """
        if not value:
            return None

        try:
            return int(value)
        except ValueError:
            pass

        try:
            dt = parsedate_to_datetime(value)
            delta = dt - datetime.now(UTC)
            return max(0, int(delta.total_seconds()))
        except (ValueError, TypeError):
            pass

        return None
