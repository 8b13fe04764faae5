"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def seconds_until(deadline: datetime, now: datetime | None = None) -> int:
    """Whole seconds left until deadline, never negative."""
    now = now or utc_now()
    return max(0, int((deadline - now).total_seconds()))
