from .base import ResponseBase
from .users import UserCreate, UserRead, UserCreated
from .links import LinkCreate, LinkRead, LinkActiveUpdate
from .analytics import (
    DashboardFilters,
    DashboardResponse,
    LiveDashboardResponse,
    OverviewResponse,
)
from .revenue import RevenueSummaryResponse

__all__ = [
    # Base
    "ResponseBase",

    # Users
    "UserCreate",
    "UserRead",
    "UserCreated",

    # Links
    "LinkCreate",
    "LinkRead",
    "LinkActiveUpdate",

    # Analytics
    "DashboardFilters",
    "DashboardResponse",
    "LiveDashboardResponse",
    "OverviewResponse",

    # Revenue
    "RevenueSummaryResponse",
]
