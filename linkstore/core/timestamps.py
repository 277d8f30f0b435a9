"""Timestamp normalization between Firestore values and cached strings."""

from datetime import UTC, datetime
from typing import Any


def utc_now_iso() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def now_millis() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def normalize_timestamp(value: Any) -> str | None:
    """Convert a server timestamp (or anything datetime-like) to an ISO string.

    Firestore returns ``DatetimeWithNanoseconds`` which is a ``datetime``
    subclass. Strings pass through; unresolved sentinels become None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, str):
        return value or None
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, UTC).isoformat()
    return None


def to_epoch_millis(value: Any) -> float:
    """Coerce a timestamp to epoch milliseconds. Missing or unparseable is 0."""
    if value is None:
        return 0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.timestamp() * 1000
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return 0
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.timestamp() * 1000
    return 0
