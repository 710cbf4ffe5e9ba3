from __future__ import annotations

from datetime import datetime, timedelta, timezone

UTC = timezone.utc

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return a tz-aware UTC timestamp."""
    return datetime.now(UTC)


def is_tz_aware(value: datetime) -> bool:
    """True if a datetime is timezone-aware (has a non-None UTC offset)."""
    return value.tzinfo is not None and value.utcoffset() is not None


def coerce_utc(value: datetime, *, assume_naive_is_utc: bool = True) -> datetime:
    """Coerce any datetime to tz-aware UTC.

    Adapters may call this when receiving datetimes from untyped boundaries.
    """
    if is_tz_aware(value):
        return value.astimezone(UTC)

    if not assume_naive_is_utc:
        raise ValueError("Naive datetime cannot be coerced without an explicit assumption")

    return value.replace(tzinfo=UTC)


def parse_iso8601(value: str) -> datetime:
    """Parse ISO8601/RFC3339 timestamps into tz-aware UTC datetimes.

    Supports `Z` suffix. Naive timestamps are treated as UTC.
    """
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = normalized[:-1] + "+00:00"
    return coerce_utc(datetime.fromisoformat(normalized))


def truncate_to_window(value: datetime, window_seconds: int) -> datetime:
    """Floor a timestamp to the start of its fixed window (epoch aligned, UTC)."""
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    elapsed = int((coerce_utc(value) - _EPOCH).total_seconds())
    return _EPOCH + timedelta(seconds=elapsed - (elapsed % window_seconds))
