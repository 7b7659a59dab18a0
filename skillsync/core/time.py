"""
Unified clock helpers.

Rules:
1. Internal timestamps are always UTC
2. Persisted timestamps are ISO 8601 strings with a Z suffix
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current UTC time (timezone-aware).

    Returns:
        datetime: aware UTC datetime object
    """
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """
    Current UTC time as ISO 8601 with Z suffix.

    Returns:
        str: e.g. '2026-01-31T12:34:56.789Z'
    """
    now = utc_now()
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp written by utc_now_iso(); None on bad input."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
