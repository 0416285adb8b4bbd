"""Constants for the Notion source client."""

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Maximum retry delay cap for rate limiting (seconds)
MAX_RETRY_AFTER_SECONDS = 60

# Nested block levels fetched below a page
MAX_BLOCK_DEPTH = 3

# Characters of the compact page ID used in fallback titles
FALLBACK_TITLE_ID_CHARS = 8
