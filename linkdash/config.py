"""Core application configuration & dashboard reporting rules.

Everything that shapes the dashboard output (series length, top-N cut-offs,
refresh cadence, short URL policy, revenue goals, payout minimums) lives here
so it can be tuned without touching service logic. Values are read from the
environment once at import time; tests monkeypatch the dicts directly.
"""
from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ------------------------------ Event Source ------------------------------ #
# "database" reads live rows through SQLAlchemy; "fixture" serves the static
# sample data set (demo mode / offline frontend work).
EVENT_SOURCE_BACKEND: str = os.getenv("EVENT_SOURCE_BACKEND", "database").strip().lower()

# ------------------------------- Dashboard -------------------------------- #
DASHBOARD_SETTINGS: dict[str, int | float] = {
    "time_series_points": _env_int("DASHBOARD_TIME_SERIES_POINTS", 7),
    "top_countries": _env_int("DASHBOARD_TOP_COUNTRIES", 10),
    "recent_activity_limit": _env_int("DASHBOARD_RECENT_ACTIVITY", 10),
    # No impression data is collected yet; CTR is reported as this constant
    # until impressions are passed to the aggregator.
    "placeholder_ctr_pct": 3.4,
    "currency_decimals": 2,
    "percentage_decimals": 1,
}

# Selectable dashboard windows (label -> days).
DATE_WINDOWS: dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
DEFAULT_DATE_WINDOW: str = "7d"

# -------------------------------- Refresh --------------------------------- #
REFRESH_SETTINGS: dict[str, float | int] = {
    "interval_seconds": _env_float("REFRESH_INTERVAL_SECONDS", 30.0),
    "max_refreshers": _env_int("REFRESH_MAX_REFRESHERS", 200),
}

# ------------------------------ Notifications ----------------------------- #
NOTIFIER_SETTINGS: dict[str, str | bool | float] = {
    "use_redis": os.getenv("NOTIFIER_USE_REDIS", "false").lower() in ("1", "true", "yes"),
    "redis_url": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
    "channel_prefix": "linkdash:changes:",
    "redis_health_check_timeout": 2.0,
}
CHANGE_STREAMS: tuple[str, ...] = ("clicks", "conversions")

# ------------------------------- Short URLs ------------------------------- #
SHORT_URL_SETTINGS: dict[str, str | int] = {
    "base_url": os.getenv("SHORT_URL_BASE", "https://your-domain.com/go/"),
    "code_length": max(4, min(32, _env_int("SHORT_CODE_LENGTH", 8))),
    "max_attempts": 5,
}

# --------------------------------- Links ---------------------------------- #
LINK_SETTINGS: dict[str, str | int | tuple[str, ...]] = {
    "default_category": "General",
    "known_platforms": (
        "Amazon",
        "Flipkart",
        "ClickBank",
        "ShareASale",
        "Commission Junction",
        "Other",
    ),
    "title_max_length": 300,
}

# -------------------------------- Revenue --------------------------------- #
REVENUE_GOALS: dict[str, float] = {
    "monthly": _env_float("REVENUE_GOAL_MONTHLY", 30000.0),
    "quarterly": _env_float("REVENUE_GOAL_QUARTERLY", 75000.0),
    "yearly": _env_float("REVENUE_GOAL_YEARLY", 250000.0),
}

# Minimum pending balance a network pays out (per platform).
PAYOUT_MINIMUMS: dict[str, float] = {
    "Amazon": 100.0,
    "Flipkart": 250.0,
    "ClickBank": 50.0,
    "ShareASale": 50.0,
    "Commission Junction": 50.0,
}
DEFAULT_PAYOUT_MINIMUM: float = 100.0

REVENUE_SETTINGS: dict[str, int] = {
    "top_links": 5,
    "default_months": 6,
}

__all__ = [
    "EVENT_SOURCE_BACKEND",
    "DASHBOARD_SETTINGS",
    "DATE_WINDOWS",
    "DEFAULT_DATE_WINDOW",
    "REFRESH_SETTINGS",
    "NOTIFIER_SETTINGS",
    "CHANGE_STREAMS",
    "SHORT_URL_SETTINGS",
    "LINK_SETTINGS",
    "REVENUE_GOALS",
    "PAYOUT_MINIMUMS",
    "DEFAULT_PAYOUT_MINIMUM",
    "REVENUE_SETTINGS",
]
