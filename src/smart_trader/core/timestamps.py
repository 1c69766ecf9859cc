"""Timestamp parsing utilities for market end dates and CLI arguments."""

import time
from datetime import UTC, datetime

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def now_ts() -> int:
    """Return the current Unix time in whole seconds."""
    return int(time.time())


def parse_timestamp(value: str) -> int:
    """Parse an ISO 8601 string or raw integer into a Unix timestamp.

    Accept dates (``2024-01-01``), naive datetimes (treated as UTC), and
    offset-aware datetimes including the ``Z`` suffix the Gamma API uses
    (``2024-01-01T12:00:00Z``).

    Args:
        value: Date string or integer timestamp.

    Returns:
        Unix timestamp in seconds.

    Raises:
        ValueError: If the value cannot be parsed.

    """
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        msg = f"Cannot parse timestamp: {value!r}. Use ISO 8601 (YYYY-MM-DD) or a Unix timestamp."
        raise ValueError(msg) from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp())


def parse_optional_timestamp(value: str | None) -> int | None:
    """Parse a timestamp, returning ``None`` for missing or malformed input."""
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def to_iso(ts: int) -> str:
    """Format a Unix timestamp as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(ts, tz=UTC).isoformat().replace("+00:00", "Z")


def start_of_utc_day(ts: int) -> int:
    """Return the Unix timestamp of midnight UTC on the day containing ``ts``."""
    return ts - ts % SECONDS_PER_DAY
