from __future__ import annotations
"""SQLAlchemy model for recorded clicks on affiliate links.

Rows are written by the click-capture path (outside this service); the
dashboard only reads them.
"""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .links import AffiliateLink
    from .conversions import Conversion
from linkdash.database import Base

class ClickEvent(Base):
    __tablename__ = "click_events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    link_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False, index=True
    )
    clicked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    country: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    device_type: Mapped[str | None] = mapped_column(String, nullable=True)
    browser: Mapped[str | None] = mapped_column(String, nullable=True)

    link: Mapped["AffiliateLink"] = relationship("AffiliateLink", back_populates="clicks")
    conversions: Mapped[list["Conversion"]] = relationship(
        "Conversion", back_populates="click", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_click_events_link_clicked_at", "link_id", "clicked_at"),
    )
