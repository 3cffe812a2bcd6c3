"""Central Enum definitions for link and conversion states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and reporting logic.
"""
from __future__ import annotations
import enum


class LinkStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"


class StatusFilter(str, enum.Enum):
    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"


class ExportFormat(str, enum.Enum):
    CSV = "csv"
    JSON = "json"


__all__ = [
    "LinkStatus",
    "StatusFilter",
    "PayoutStatus",
    "ExportFormat",
]
