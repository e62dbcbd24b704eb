"""Timestamp helpers for run records and log output.

All timestamps handled by the pipeline are timezone-aware UTC datetimes.
Run rows store them as ISO 8601 strings with a trailing ``Z``.
"""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> utc_now().tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware datetimes are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for a run row (microsecond precision, ``Z`` suffix)."""
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into a UTC datetime.

    Accepts values with or without microseconds. Empty values map to None.

    Example:
        >>> from_storage("2025-11-04T09:00:00.000000Z").hour
        9
    """
    if not value:
        return None

    cleaned = value.rstrip("Z")
    try:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format a datetime for display (seconds precision, ``Z`` suffix).

    Example:
        >>> format_timestamp(datetime(2025, 11, 4, 21, 0, tzinfo=timezone.utc))
        '2025-11-04T21:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def elapsed_seconds(started_at: Optional[datetime], completed_at: Optional[datetime]) -> Optional[float]:
    """Seconds between two timestamps, or None while a run is still open."""
    start = ensure_utc(started_at)
    end = ensure_utc(completed_at)
    if start is None or end is None:
        return None
    return round((end - start).total_seconds(), 3)
