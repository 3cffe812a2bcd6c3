"""Click / revenue aggregation for the dashboard.

Turns one user's click log (already restricted to a date window) into an
``AggregateSnapshot``: KPI totals, a daily time series, platform / country /
device breakdowns and a recent-activity feed.

The transform is pure. It never mutates its input and recomputes everything
from scratch on each call, so two calls on the same collection produce equal
snapshots. Absent optional fields are normalized to ``"Unknown"`` (strings)
or 0 (amounts) before grouping, which makes every grouping a partition of the
input: the clicks of each breakdown sum to ``total_clicks``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from linkdash.config import DASHBOARD_SETTINGS
from linkdash.models.db.enums import StatusFilter
from linkdash.utils.metrics import growth_pct, percentage, safe_div
from linkdash.utils.time import as_utc

UNKNOWN = "Unknown"


# ------------------------------- input types ------------------------------- #

@dataclass(frozen=True)
class ConversionRecord:
    commission_amount: float = 0.0
    payout_status: str = "pending"
    converted_at: Optional[datetime] = None


@dataclass(frozen=True)
class ClickEventRecord:
    """A click joined to its parent link and conversions, fields normalized."""
    id: Any
    clicked_at: datetime
    link_id: Any = None
    link_title: str = UNKNOWN
    platform: str = UNKNOWN
    link_active: bool = True
    country: str = UNKNOWN
    city: str = UNKNOWN
    device_type: str = UNKNOWN
    browser: str = UNKNOWN
    conversions: tuple[ConversionRecord, ...] = ()

    @property
    def revenue(self) -> float:
        return sum(c.commission_amount for c in self.conversions)


@dataclass(frozen=True)
class DashboardQuery:
    """Explicit dashboard filters (no ambient UI state)."""
    window_days: int = 7
    platform: Optional[str] = None
    status: StatusFilter = StatusFilter.ALL

    def matches(self, event: ClickEventRecord) -> bool:
        if self.platform and event.platform != self.platform:
            return False
        if self.status == StatusFilter.ACTIVE and not event.link_active:
            return False
        if self.status == StatusFilter.INACTIVE and event.link_active:
            return False
        return True


# ------------------------------- output types ------------------------------ #

@dataclass(frozen=True)
class TimeSeriesPoint:
    date: date
    clicks: int
    revenue: float


@dataclass(frozen=True)
class GroupTotals:
    key: str
    clicks: int
    revenue: float
    percentage: float

    @property
    def cpc(self) -> float:
        return safe_div(self.revenue, self.clicks)


@dataclass(frozen=True)
class RecentActivity:
    id: Any
    country: str
    city: str
    device_type: str
    browser: str
    clicked_at: datetime
    link_title: str


@dataclass(frozen=True)
class PeriodChange:
    """Percent change against the previous window of equal length (None without a baseline)."""
    revenue_change: Optional[float] = None
    clicks_change: Optional[float] = None
    conversions_change: Optional[float] = None


@dataclass(frozen=True)
class AggregateSnapshot:
    total_clicks: int = 0
    total_revenue: float = 0.0
    total_conversions: int = 0
    avg_ctr: float = 0.0
    avg_cpc: float = 0.0
    ctr_is_placeholder: bool = True
    time_series: tuple[TimeSeriesPoint, ...] = ()
    by_platform: Mapping[str, GroupTotals] = field(default_factory=dict)
    by_country: tuple[GroupTotals, ...] = ()
    by_device: tuple[GroupTotals, ...] = ()
    recent_activity: tuple[RecentActivity, ...] = ()
    changes: PeriodChange = field(default_factory=PeriodChange)


# ------------------------------- normalization ----------------------------- #

def normalize_text(value: Any) -> str:
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def normalize_amount(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(raw))
    raise ValueError(f"Unsupported clicked_at value: {value!r}")


def normalize_conversion(raw: Mapping[str, Any] | ConversionRecord) -> ConversionRecord:
    if isinstance(raw, ConversionRecord):
        return raw
    converted_at = raw.get("converted_at")
    status = raw.get("payout_status") or "pending"
    return ConversionRecord(
        commission_amount=normalize_amount(raw.get("commission_amount")),
        payout_status=getattr(status, "value", str(status)),
        converted_at=_timestamp(converted_at) if converted_at else None,
    )


def normalize_event(raw: Mapping[str, Any] | ClickEventRecord) -> ClickEventRecord:
    """Build a ``ClickEventRecord`` from a row mapping.

    The parent link may be nested under ``"link"`` (``{"id", "title",
    "platform", "is_active"}``) or flattened as ``link_id`` / ``link_title``
    / ``platform``.
    """
    if isinstance(raw, ClickEventRecord):
        return raw
    link = raw.get("link") or {}
    return ClickEventRecord(
        id=raw.get("id"),
        clicked_at=_timestamp(raw.get("clicked_at")),
        link_id=link.get("id", raw.get("link_id")),
        link_title=normalize_text(link.get("title", raw.get("link_title"))),
        platform=normalize_text(link.get("platform", raw.get("platform"))),
        link_active=bool(link.get("is_active", raw.get("link_active", True))),
        country=normalize_text(raw.get("country")),
        city=normalize_text(raw.get("city")),
        device_type=normalize_text(raw.get("device_type")),
        browser=normalize_text(raw.get("browser")),
        conversions=tuple(normalize_conversion(c) for c in (raw.get("conversions") or ())),
    )


# -------------------------------- aggregation ------------------------------ #

class _Accumulator:
    __slots__ = ("clicks", "revenue")

    def __init__(self) -> None:
        self.clicks = 0
        self.revenue = 0.0

    def add(self, revenue: float) -> None:
        self.clicks += 1
        self.revenue += revenue


def _grouped(accumulators: dict[str, _Accumulator], total_clicks: int) -> list[GroupTotals]:
    return [
        GroupTotals(key=key, clicks=acc.clicks, revenue=acc.revenue, percentage=percentage(acc.clicks, total_clicks))
        for key, acc in accumulators.items()
    ]


def _by_clicks_desc(groups: list[GroupTotals]) -> list[GroupTotals]:
    # sorted() is stable: equal counts keep first-seen order
    return sorted(groups, key=lambda g: -g.clicks)


def aggregate(
    events: Iterable[Mapping[str, Any] | ClickEventRecord],
    *,
    query: Optional[DashboardQuery] = None,
    impressions: Optional[int] = None,
    time_series_points: Optional[int] = None,
    top_countries: Optional[int] = None,
    recent_limit: Optional[int] = None,
) -> AggregateSnapshot:
    """Compute the dashboard snapshot for a click collection.

    Args:
        events: click events (records or row mappings) for one user and window
        query: optional platform / link status filter applied before grouping
        impressions: impression count for the same events; when given, CTR is
            clicks / impressions * 100, otherwise the configured placeholder
        time_series_points: keep only the most recent N days (default from config, 0 keeps all)
        top_countries: truncate the country breakdown (default from config)
        recent_limit: size of the recent-activity feed (default from config)
    Returns:
        AggregateSnapshot
    """
    points = int(time_series_points if time_series_points is not None else DASHBOARD_SETTINGS["time_series_points"])
    top_n = int(top_countries if top_countries is not None else DASHBOARD_SETTINGS["top_countries"])
    recent_n = int(recent_limit if recent_limit is not None else DASHBOARD_SETTINGS["recent_activity_limit"])

    records: Sequence[ClickEventRecord] = [normalize_event(e) for e in events]
    if query is not None:
        records = [r for r in records if query.matches(r)]

    by_day: dict[date, _Accumulator] = {}
    by_platform: dict[str, _Accumulator] = {}
    by_country: dict[str, _Accumulator] = {}
    by_device: dict[str, _Accumulator] = {}
    total_revenue = 0.0

    for record in records:
        revenue = record.revenue
        total_revenue += revenue
        # Day of the event's own timestamp, no timezone shift
        by_day.setdefault(record.clicked_at.date(), _Accumulator()).add(revenue)
        by_platform.setdefault(record.platform, _Accumulator()).add(revenue)
        by_country.setdefault(record.country, _Accumulator()).add(revenue)
        by_device.setdefault(record.device_type, _Accumulator()).add(revenue)

    total_clicks = len(records)

    series = [
        TimeSeriesPoint(date=day, clicks=acc.clicks, revenue=acc.revenue)
        for day, acc in sorted(by_day.items())
    ]
    if points > 0:
        series = series[-points:]

    platforms = {g.key: g for g in _grouped(by_platform, total_clicks)}
    countries = _by_clicks_desc(_grouped(by_country, total_clicks))[:top_n]
    devices = _by_clicks_desc(_grouped(by_device, total_clicks))

    recent = sorted(records, key=lambda r: r.clicked_at, reverse=True)[:recent_n]

    if impressions is None:
        avg_ctr = float(DASHBOARD_SETTINGS["placeholder_ctr_pct"]) if total_clicks else 0.0
        ctr_is_placeholder = True
    else:
        avg_ctr = percentage(total_clicks, impressions)
        ctr_is_placeholder = False

    return AggregateSnapshot(
        total_clicks=total_clicks,
        total_revenue=total_revenue,
        total_conversions=sum(len(r.conversions) for r in records),
        avg_ctr=avg_ctr,
        avg_cpc=safe_div(total_revenue, total_clicks),
        ctr_is_placeholder=ctr_is_placeholder,
        time_series=tuple(series),
        by_platform=platforms,
        by_country=tuple(countries),
        by_device=tuple(devices),
        recent_activity=tuple(
            RecentActivity(
                id=r.id,
                country=r.country,
                city=r.city,
                device_type=r.device_type,
                browser=r.browser,
                clicked_at=r.clicked_at,
                link_title=r.link_title,
            )
            for r in recent
        ),
    )


def aggregate_with_comparison(
    events: Iterable[Mapping[str, Any] | ClickEventRecord],
    *,
    boundary: datetime,
    query: Optional[DashboardQuery] = None,
    **options: Any,
) -> AggregateSnapshot:
    """Aggregate the clicks at or after ``boundary`` and compare with those before it.

    ``events`` should span two windows of equal length: the current one
    starting at ``boundary`` and the previous one ending there. Only the
    current window is broken down; the previous one contributes the KPI
    baseline for ``changes``.
    """
    boundary = as_utc(boundary)
    current: list[ClickEventRecord] = []
    previous: list[ClickEventRecord] = []
    for raw in events:
        record = normalize_event(raw)
        (current if record.clicked_at >= boundary else previous).append(record)

    snapshot = aggregate(current, query=query, **options)
    if query is not None:
        previous = [r for r in previous if query.matches(r)]
    baseline_revenue = sum(r.revenue for r in previous)
    baseline_conversions = sum(len(r.conversions) for r in previous)
    return replace(
        snapshot,
        changes=PeriodChange(
            revenue_change=growth_pct(snapshot.total_revenue, baseline_revenue),
            clicks_change=growth_pct(snapshot.total_clicks, len(previous)),
            conversions_change=growth_pct(snapshot.total_conversions, baseline_conversions),
        ),
    )


__all__ = [
    "UNKNOWN",
    "ConversionRecord",
    "ClickEventRecord",
    "DashboardQuery",
    "TimeSeriesPoint",
    "GroupTotals",
    "RecentActivity",
    "AggregateSnapshot",
    "PeriodChange",
    "normalize_event",
    "normalize_conversion",
    "normalize_text",
    "normalize_amount",
    "aggregate",
    "aggregate_with_comparison",
]
