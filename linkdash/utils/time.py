"""Time utilities (UTC now, dashboard window bounds)."""
from __future__ import annotations
from datetime import datetime, timezone, timedelta

from linkdash.config import DATE_WINDOWS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def window_days(label: str) -> int:
    """Translate a window label ("7d", "30d", "90d", "1y") to days."""
    try:
        return DATE_WINDOWS[label]
    except KeyError:
        raise ValueError(f"Unknown date window '{label}'. Choose one of {sorted(DATE_WINDOWS)}") from None


def window_start(days: int, now: datetime | None = None) -> datetime:
    return (now or utc_now()) - timedelta(days=days)


def comparison_bounds(days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    """(fetch start, current window start) for a window compared with the one before it."""
    now = now or utc_now()
    return window_start(2 * days, now), window_start(days, now)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


__all__ = ["utc_now", "window_days", "window_start", "comparison_bounds", "as_utc"]
