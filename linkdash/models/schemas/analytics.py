"""
Dashboard response models.

Snapshot values are kept at full precision by the aggregator; rounding to
currency / percentage precision happens here, at serialization time.
"""
from datetime import date, datetime
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field

from linkdash.services.aggregator import AggregateSnapshot
from linkdash.services.lookups import country_coordinates, platform_color
from linkdash.utils.metrics import round_change, round_currency, round_pct


class DashboardFilters(BaseModel):
    window: str
    window_days: int
    platform: Optional[str] = None
    status: str = "all"


class KPIBlock(BaseModel):
    total_clicks: int = Field(ge=0)
    total_revenue: float
    avg_ctr: float
    avg_cpc: float
    ctr_is_placeholder: bool = Field(description="True while CTR is the fixed placeholder (no impression data)")
    total_conversions: int = Field(0, ge=0)
    # Percent change against the previous window of the same length
    revenue_change: Optional[float] = None
    clicks_change: Optional[float] = None
    conversions_change: Optional[float] = None


class TimeSeriesPointOut(BaseModel):
    date: date
    clicks: int
    revenue: float


class PlatformStat(BaseModel):
    platform: str
    clicks: int
    revenue: float
    percentage: float
    cpc: float
    color: str


class CountryStat(BaseModel):
    country: str
    clicks: int
    revenue: float
    percentage: float
    coordinates: Tuple[float, float]


class DeviceStat(BaseModel):
    device: str
    clicks: int
    percentage: float


class RecentClick(BaseModel):
    id: str
    country: str
    city: str
    device_type: str
    browser: str
    clicked_at: datetime
    link_title: str


class DashboardResponse(BaseModel):
    filters: DashboardFilters
    kpis: KPIBlock
    time_series: List[TimeSeriesPointOut]
    platforms: List[PlatformStat]
    countries: List[CountryStat]
    devices: List[DeviceStat]
    recent_activity: List[RecentClick]

    @classmethod
    def from_snapshot(cls, snapshot: AggregateSnapshot, filters: DashboardFilters) -> "DashboardResponse":
        return cls(
            filters=filters,
            kpis=KPIBlock(
                total_clicks=snapshot.total_clicks,
                total_revenue=round_currency(snapshot.total_revenue),
                avg_ctr=round_pct(snapshot.avg_ctr),
                avg_cpc=round_currency(snapshot.avg_cpc),
                ctr_is_placeholder=snapshot.ctr_is_placeholder,
                total_conversions=snapshot.total_conversions,
                revenue_change=round_change(snapshot.changes.revenue_change),
                clicks_change=round_change(snapshot.changes.clicks_change),
                conversions_change=round_change(snapshot.changes.conversions_change),
            ),
            time_series=[
                TimeSeriesPointOut(date=p.date, clicks=p.clicks, revenue=round_currency(p.revenue))
                for p in snapshot.time_series
            ],
            platforms=[
                PlatformStat(
                    platform=g.key,
                    clicks=g.clicks,
                    revenue=round_currency(g.revenue),
                    percentage=round_pct(g.percentage),
                    cpc=round_currency(g.cpc),
                    color=platform_color(g.key),
                )
                for g in snapshot.by_platform.values()
            ],
            countries=[
                CountryStat(
                    country=g.key,
                    clicks=g.clicks,
                    revenue=round_currency(g.revenue),
                    percentage=round_pct(g.percentage),
                    coordinates=country_coordinates(g.key),
                )
                for g in snapshot.by_country
            ],
            devices=[
                DeviceStat(device=g.key, clicks=g.clicks, percentage=round_pct(g.percentage))
                for g in snapshot.by_device
            ],
            recent_activity=[
                RecentClick(
                    id=str(a.id),
                    country=a.country,
                    city=a.city,
                    device_type=a.device_type,
                    browser=a.browser,
                    clicked_at=a.clicked_at,
                    link_title=a.link_title,
                )
                for a in snapshot.recent_activity
            ],
        )


class LiveDashboardResponse(BaseModel):
    """Last-known-good snapshot from the background refresher."""
    dashboard: Optional[DashboardResponse] = None
    stale: bool
    last_refreshed_at: Optional[datetime] = None
    generation: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    refresh_interval_seconds: float


class OverviewResponse(BaseModel):
    """Home tab stat cards."""
    window: str
    total_revenue: float
    total_clicks: int
    active_links: int
    total_links: int
    conversions: int
    conversion_rate: float
    revenue_change: Optional[float] = None
    clicks_change: Optional[float] = None
    conversions_change: Optional[float] = None
