"""Shared constants for the Polymarket client package."""

HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404

# Status used when the failure happened before any HTTP response arrived
# (timeout, connection reset, malformed body).
HTTP_TRANSPORT_ERROR = 0

GAMMA_BASE_URL = "https://gamma-api.polymarket.com"
DEFAULT_PAGE_SIZE = 500
DEFAULT_TIMEOUT = 15.0
DEFAULT_RETRY_BACKOFF = 0.5
MAX_CONSECUTIVE_PAGE_ERRORS = 2
