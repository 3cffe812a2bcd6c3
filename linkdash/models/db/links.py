from __future__ import annotations
"""SQLAlchemy model for trackable affiliate links."""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, ForeignKey, DateTime, Boolean
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
    from .clicks import ClickEvent
from sqlalchemy.sql import func
from linkdash.config import SHORT_URL_SETTINGS
from linkdash.database import Base
from .enums import LinkStatus

class AffiliateLink(Base):
    __tablename__ = "affiliate_links"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String, nullable=False)
    original_url: Mapped[str] = mapped_column(String, nullable=False)
    short_code: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    platform: Mapped[str] = mapped_column(String, index=True, nullable=False)
    category: Mapped[str | None] = mapped_column(String, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    owner: Mapped["User"] = relationship("User", back_populates="links")
    clicks: Mapped[list["ClickEvent"]] = relationship(
        "ClickEvent", back_populates="link", cascade="all, delete-orphan"
    )

    @property
    def smart_url(self) -> str:
        return f"{SHORT_URL_SETTINGS['base_url']}{self.short_code}"

    @property
    def status(self) -> LinkStatus:
        return LinkStatus.ACTIVE if self.is_active else LinkStatus.PAUSED
