"""
Revenue tab endpoint.
"""
from fastapi import APIRouter, Depends, Query, Request
import time
from linkdash.api.deps import get_current_user, get_event_source, get_request_id
from linkdash.models.db import User
from linkdash.models.schemas.revenue import RevenueSummaryResponse
from linkdash.services.event_source import EventSource
from linkdash.services.revenue_tracker import build_revenue_summary, revenue_fetch_start
from linkdash.utils import get_logger, log_performance
from linkdash.utils.time import utc_now

router = APIRouter()
logger = get_logger(__name__)


@router.get("/summary", response_model=RevenueSummaryResponse, summary="Revenue tracker")
async def get_revenue_summary(
    request: Request,
    months: int = Query(6, ge=1, le=24, description="Months of history to report (3, 6 or 12 in the UI)"),
    user: User = Depends(get_current_user),
    source: EventSource = Depends(get_event_source),
) -> RevenueSummaryResponse:
    """Monthly revenue per platform, growth, goals, top links and pending payouts."""
    start = time.time()
    now = utc_now()
    events = source.fetch(user.id, revenue_fetch_start(months, now))
    summary = build_revenue_summary(events, months=months, now=now)

    log_performance(
        operation="revenue_summary",
        duration_ms=(time.time() - start) * 1000,
        additional_data={"user_id": user.id, "months": months, "events": len(events), "request_id": get_request_id(request)}
    )
    return RevenueSummaryResponse.from_summary(summary, months)
