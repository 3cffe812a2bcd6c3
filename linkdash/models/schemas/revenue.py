"""
Revenue tab response models.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel

from linkdash.services.revenue_tracker import RevenueSummary
from linkdash.utils.metrics import round_currency, round_pct


class MonthlyRevenueOut(BaseModel):
    month: str
    by_platform: Dict[str, float]
    total: float


class PlatformShareOut(BaseModel):
    platform: str
    revenue: float
    percentage: float


class GoalOut(BaseModel):
    period: str
    target: float
    current: float
    progress_pct: float
    progress_display: float


class TopLinkOut(BaseModel):
    link_id: Optional[str]
    title: str
    platform: str
    clicks: int
    conversions: int
    revenue: float
    conversion_rate: float


class PayoutOut(BaseModel):
    platform: str
    pending: float
    minimum: float
    eligible: bool
    remaining_to_minimum: float
    oldest_pending_at: Optional[datetime] = None


class RevenueSummaryResponse(BaseModel):
    months: int
    total_revenue: float
    growth_pct: Optional[float]
    monthly: List[MonthlyRevenueOut]
    platform_breakdown: List[PlatformShareOut]
    goals: List[GoalOut]
    top_links: List[TopLinkOut]
    payouts: List[PayoutOut]

    @classmethod
    def from_summary(cls, summary: RevenueSummary, months: int) -> "RevenueSummaryResponse":
        return cls(
            months=months,
            total_revenue=round_currency(summary.total_revenue),
            growth_pct=round_pct(summary.growth_pct) if summary.growth_pct is not None else None,
            monthly=[
                MonthlyRevenueOut(
                    month=m.month,
                    by_platform={k: round_currency(v) for k, v in m.by_platform.items()},
                    total=round_currency(m.total),
                )
                for m in summary.monthly
            ],
            platform_breakdown=[
                PlatformShareOut(platform=p.platform, revenue=round_currency(p.revenue), percentage=round_pct(p.percentage))
                for p in summary.platform_breakdown
            ],
            goals=[
                GoalOut(
                    period=g.period,
                    target=round_currency(g.target),
                    current=round_currency(g.current),
                    progress_pct=round_pct(g.progress_pct),
                    progress_display=round_pct(g.progress_display),
                )
                for g in summary.goals
            ],
            top_links=[
                TopLinkOut(
                    link_id=str(t.link_id) if t.link_id is not None else None,
                    title=t.title,
                    platform=t.platform,
                    clicks=t.clicks,
                    conversions=t.conversions,
                    revenue=round_currency(t.revenue),
                    conversion_rate=round_pct(t.conversion_rate),
                )
                for t in summary.top_links
            ],
            payouts=[
                PayoutOut(
                    platform=p.platform,
                    pending=round_currency(p.pending),
                    minimum=round_currency(p.minimum),
                    eligible=p.eligible,
                    remaining_to_minimum=round_currency(p.remaining_to_minimum),
                    oldest_pending_at=p.oldest_pending_at,
                )
                for p in summary.payouts
            ],
        )
