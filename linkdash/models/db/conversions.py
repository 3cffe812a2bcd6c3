from __future__ import annotations
"""SQLAlchemy model for commissions credited to a click."""
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import Integer, ForeignKey, DateTime, Numeric, Enum, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .clicks import ClickEvent
from sqlalchemy.sql import func
from linkdash.database import Base
from .enums import PayoutStatus

class Conversion(Base):
    __tablename__ = "conversions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    click_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("click_events.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Null means the network has not reported an amount yet; counted as 0.
    commission_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payout_status: Mapped[PayoutStatus] = mapped_column(Enum(PayoutStatus), default=PayoutStatus.PENDING)
    converted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    click: Mapped["ClickEvent"] = relationship("ClickEvent", back_populates="conversions")

    __table_args__ = (
        CheckConstraint(
            "commission_amount IS NULL OR commission_amount >= 0",
            name="commission_amount_non_negative"
        ),
    )
