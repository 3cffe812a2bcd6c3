from .users import User
from .links import AffiliateLink
from .clicks import ClickEvent
from .conversions import Conversion
from .enums import LinkStatus, StatusFilter, PayoutStatus, ExportFormat

__all__ = [
    "User",
    "AffiliateLink",
    "ClickEvent",
    "Conversion",
    "LinkStatus",
    "StatusFilter",
    "PayoutStatus",
    "ExportFormat",
]
