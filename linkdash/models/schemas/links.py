"""
Pydantic schemas for the link registry.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from ..db.enums import LinkStatus
from linkdash.utils.metrics import round_currency, round_pct


class LinkCreate(BaseModel):
    """Link input. Emptiness and URL shape are checked by the link registry
    so that every failing field is reported together."""
    title: str
    original_url: str
    platform: str
    category: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "iPhone 15 Pro Max - Amazon",
            "original_url": "https://www.amazon.com/dp/B0CHX1W1XY?tag=mytag-20",
            "platform": "Amazon",
            "category": "Electronics",
        }
    })


class LinkActiveUpdate(BaseModel):
    is_active: bool


class LinkRead(BaseModel):
    id: int
    title: str
    original_url: str
    short_code: str
    smart_url: str
    platform: str
    category: Optional[str]
    is_active: bool
    status: LinkStatus
    created_at: Optional[datetime] = None

    clicks: int = Field(0, ge=0)
    conversions: int = Field(0, ge=0)
    revenue: float = Field(0.0, ge=0.0)
    conversion_rate: float = Field(0.0, ge=0.0)

    @classmethod
    def from_metrics(cls, item) -> "LinkRead":
        """Build from a ``LinkWithMetrics`` (rounded for display)."""
        link = item.link
        return cls(
            id=link.id,
            title=link.title,
            original_url=link.original_url,
            short_code=link.short_code,
            smart_url=link.smart_url,
            platform=link.platform,
            category=link.category,
            is_active=link.is_active,
            status=link.status,
            created_at=link.created_at,
            clicks=item.clicks,
            conversions=item.conversions,
            revenue=round_currency(item.revenue),
            conversion_rate=round_pct(item.conversion_rate),
        )
