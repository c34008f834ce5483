"""
UTC timestamp utilities (stdlib-only).

Every persisted timestamp goes through :func:`to_iso8601`, which always
emits UTC with microsecond precision.  Fixed-width strings make SQL string
comparison (``scheduled_at <= ?``) agree with chronological order, which
the due-item scan and the lease expiry checks rely on.

Tags:
    timestamps, utc, datetime, storecast, stdlib-only
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to a fixed-width UTC ISO 8601 string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware UTC datetime."""
    if s is None:
        return None
    return ensure_utc(datetime.fromisoformat(s))
