"""Pure metric math helpers used by the aggregator and revenue tracker."""
from __future__ import annotations

from typing import Optional

from linkdash.config import DASHBOARD_SETTINGS


def safe_div(numerator: float | int, denominator: float | int) -> float:
    if denominator in (0, 0.0):
        return 0.0
    return float(numerator) / float(denominator)


def percentage(part: float | int, whole: float | int) -> float:
    """part / whole * 100, 0 when whole is 0."""
    return safe_div(part, whole) * 100.0


def growth_pct(current: float, previous: float) -> Optional[float]:
    """Period-over-period change in percent; None without a usable baseline."""
    if previous in (0, 0.0):
        return None
    return (current - previous) / previous * 100.0


def round_currency(value: float) -> float:
    return round(float(value), int(DASHBOARD_SETTINGS["currency_decimals"]))


def round_pct(value: float) -> float:
    return round(float(value), int(DASHBOARD_SETTINGS["percentage_decimals"]))


def round_change(value: Optional[float]) -> Optional[float]:
    return None if value is None else round_pct(value)


__all__ = ["safe_div", "percentage", "growth_pct", "round_currency", "round_pct", "round_change"]
