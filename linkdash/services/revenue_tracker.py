"""Revenue tracker: monthly revenue per platform, growth, goals, top links and payouts.

Works on the same normalized click records as the dashboard aggregator.
Revenue is attributed to the month of the click it was credited to. Monthly
figures, totals, platform shares and top links cover the reported calendar
months only. Goals cover their own periods and pending payouts cover every
record passed in.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from linkdash.config import DEFAULT_PAYOUT_MINIMUM, PAYOUT_MINIMUMS, REVENUE_GOALS, REVENUE_SETTINGS
from linkdash.models.db.enums import PayoutStatus
from linkdash.services.aggregator import ClickEventRecord, normalize_event
from linkdash.utils.metrics import growth_pct, percentage
from linkdash.utils.time import as_utc, utc_now


@dataclass(frozen=True)
class MonthlyRevenue:
    month: str  # "YYYY-MM"
    by_platform: Mapping[str, float]
    total: float


@dataclass(frozen=True)
class PlatformShare:
    platform: str
    revenue: float
    percentage: float


@dataclass(frozen=True)
class GoalProgress:
    period: str
    target: float
    current: float

    @property
    def progress_pct(self) -> float:
        return percentage(self.current, self.target)

    @property
    def progress_display(self) -> float:
        return min(100.0, self.progress_pct)


@dataclass(frozen=True)
class TopLink:
    link_id: Any
    title: str
    platform: str
    clicks: int
    conversions: int
    revenue: float

    @property
    def conversion_rate(self) -> float:
        return percentage(self.conversions, self.clicks)


@dataclass(frozen=True)
class PayoutLine:
    platform: str
    pending: float
    minimum: float
    oldest_pending_at: Optional[datetime] = None

    @property
    def eligible(self) -> bool:
        return self.pending >= self.minimum

    @property
    def remaining_to_minimum(self) -> float:
        return max(0.0, self.minimum - self.pending)


@dataclass(frozen=True)
class RevenueSummary:
    monthly: tuple[MonthlyRevenue, ...] = ()
    growth_pct: Optional[float] = None
    total_revenue: float = 0.0
    platform_breakdown: tuple[PlatformShare, ...] = ()
    goals: tuple[GoalProgress, ...] = ()
    top_links: tuple[TopLink, ...] = ()
    payouts: tuple[PayoutLine, ...] = ()


def _month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def _quarter(moment: datetime) -> tuple[int, int]:
    return moment.year, (moment.month - 1) // 3


def _month_start(moment: datetime, months_back: int = 0) -> datetime:
    year, month = moment.year, moment.month - months_back
    while month <= 0:
        month += 12
        year -= 1
    return moment.replace(year=year, month=month, day=1, hour=0, minute=0, second=0, microsecond=0)


def report_months(months: int, now: Optional[datetime] = None) -> list[str]:
    """The last ``months`` calendar months ending with the month of ``now``, oldest first."""
    reference = as_utc(now) if now is not None else utc_now()
    return [_month_key(_month_start(reference, back)) for back in range(max(months, 1) - 1, -1, -1)]


def build_revenue_summary(
    events: Iterable[Mapping[str, Any] | ClickEventRecord],
    *,
    months: Optional[int] = None,
    goals: Optional[Mapping[str, float]] = None,
    payout_minimums: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
) -> RevenueSummary:
    """Summarize revenue for the revenue tab.

    Args:
        events: click records (with conversions) covering at least the
            requested months and the current year
        months: number of calendar months to report, ending with the month
            of ``now``; months without clicks are reported as zero
        goals: period -> target ("monthly", "quarterly", "yearly")
        payout_minimums: platform -> minimum payout; unknown platforms use
            DEFAULT_PAYOUT_MINIMUM
        now: reference time for goal periods
    """
    months_n = int(months if months is not None else REVENUE_SETTINGS["default_months"])
    targets = dict(goals if goals is not None else REVENUE_GOALS)
    minimums = dict(payout_minimums if payout_minimums is not None else PAYOUT_MINIMUMS)
    reference = as_utc(now) if now is not None else utc_now()

    month_keys = report_months(months_n, reference)
    by_month: dict[str, dict[str, float]] = {key: {} for key in month_keys}
    by_platform: dict[str, float] = {}
    links: dict[Any, dict[str, Any]] = {}
    pending: dict[str, float] = {}
    oldest_pending: dict[str, datetime] = {}
    current = {"monthly": 0.0, "quarterly": 0.0, "yearly": 0.0}

    for raw in events:
        record = normalize_event(raw)
        revenue = record.revenue
        clicked = record.clicked_at

        for conversion in record.conversions:
            if conversion.payout_status == PayoutStatus.PAID.value:
                continue
            pending[record.platform] = pending.get(record.platform, 0.0) + conversion.commission_amount
            converted = conversion.converted_at
            if converted is not None and (
                record.platform not in oldest_pending or converted < oldest_pending[record.platform]
            ):
                oldest_pending[record.platform] = converted

        if clicked.year == reference.year:
            current["yearly"] += revenue
            if _quarter(clicked) == _quarter(reference):
                current["quarterly"] += revenue
            if clicked.month == reference.month:
                current["monthly"] += revenue

        month = by_month.get(_month_key(clicked))
        if month is None:
            continue
        month[record.platform] = month.get(record.platform, 0.0) + revenue
        by_platform[record.platform] = by_platform.get(record.platform, 0.0) + revenue

        entry = links.setdefault(record.link_id, {
            "title": record.link_title, "platform": record.platform,
            "clicks": 0, "conversions": 0, "revenue": 0.0,
        })
        entry["clicks"] += 1
        entry["conversions"] += len(record.conversions)
        entry["revenue"] += revenue

    monthly = tuple(
        MonthlyRevenue(month=key, by_platform=dict(by_month[key]), total=sum(by_month[key].values()))
        for key in month_keys
    )

    growth = None
    if len(monthly) >= 2:
        growth = growth_pct(monthly[-1].total, monthly[-2].total)

    total = sum(by_platform.values())
    breakdown = tuple(
        PlatformShare(platform=name, revenue=value, percentage=percentage(value, total))
        for name, value in sorted(by_platform.items(), key=lambda item: -item[1])
    )

    goal_lines = tuple(
        GoalProgress(period=period, target=float(target), current=current.get(period, 0.0))
        for period, target in targets.items()
    )

    top_n = int(REVENUE_SETTINGS["top_links"])
    ranked = sorted(links.items(), key=lambda item: -item[1]["revenue"])[:top_n]
    top_links = tuple(
        TopLink(
            link_id=link_id,
            title=data["title"],
            platform=data["platform"],
            clicks=data["clicks"],
            conversions=data["conversions"],
            revenue=data["revenue"],
        )
        for link_id, data in ranked
    )

    payouts = tuple(
        PayoutLine(
            platform=name,
            pending=amount,
            minimum=float(minimums.get(name, DEFAULT_PAYOUT_MINIMUM)),
            oldest_pending_at=oldest_pending.get(name),
        )
        for name, amount in sorted(pending.items())
    )

    return RevenueSummary(
        monthly=monthly,
        growth_pct=growth,
        total_revenue=total,
        platform_breakdown=breakdown,
        goals=goal_lines,
        top_links=top_links,
        payouts=payouts,
    )


def revenue_fetch_start(months: int, now: Optional[datetime] = None) -> datetime:
    """Earliest click time needed for ``months`` of history and the current year's goal."""
    reference = as_utc(now) if now is not None else utc_now()
    history_start = _month_start(reference, max(months, 1) - 1)
    year_start = reference.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return min(history_start, year_start)


__all__ = [
    "MonthlyRevenue",
    "PlatformShare",
    "GoalProgress",
    "TopLink",
    "PayoutLine",
    "RevenueSummary",
    "build_revenue_summary",
    "report_months",
    "revenue_fetch_start",
]
