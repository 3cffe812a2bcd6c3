"""
Dashboard analytics endpoints.

``/dashboard`` fetches and aggregates synchronously on every call.
``/live`` serves the snapshot kept by a background refresher, which
recomputes on a fixed interval and on click / conversion changes.
"""
from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy import case, func
from sqlalchemy.orm import Session
import time
from linkdash.api.deps import get_current_user, get_db, get_event_source, get_refresher_registry, get_request_id
from linkdash.config import DEFAULT_DATE_WINDOW
from linkdash.jobs.refresh import RefresherRegistry
from linkdash.models.db import AffiliateLink, User
from linkdash.models.db.enums import ExportFormat, StatusFilter
from linkdash.models.schemas.analytics import (
    DashboardFilters,
    DashboardResponse,
    LiveDashboardResponse,
    OverviewResponse,
)
from linkdash.services.aggregator import DashboardQuery, aggregate, aggregate_with_comparison
from linkdash.services.event_source import EventSource
from linkdash.services.export_service import ExportService
from linkdash.utils import get_logger, log_performance
from linkdash.utils.metrics import percentage, round_change, round_currency, round_pct
from linkdash.utils.time import comparison_bounds, utc_now, window_days, window_start

router = APIRouter()
logger = get_logger(__name__)


def _dashboard_query(window: str, platform: Optional[str], status_filter: StatusFilter) -> DashboardQuery:
    try:
        days = window_days(window)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return DashboardQuery(window_days=days, platform=platform or None, status=status_filter)


def _filters(window: str, query: DashboardQuery) -> DashboardFilters:
    return DashboardFilters(
        window=window,
        window_days=query.window_days,
        platform=query.platform,
        status=query.status.value,
    )


@router.get("/dashboard", response_model=DashboardResponse, summary="Dashboard snapshot")
async def get_dashboard(
    request: Request,
    window: str = Query(DEFAULT_DATE_WINDOW, description="7d, 30d, 90d or 1y"),
    platform: Optional[str] = Query(None),
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    user: User = Depends(get_current_user),
    source: EventSource = Depends(get_event_source),
) -> DashboardResponse:
    """Fetch the window's clicks and compute the full dashboard.

    A fetch failure surfaces as 503; no partial snapshot is returned.
    """
    start = time.time()
    query = _dashboard_query(window, platform, status_filter)
    since, boundary = comparison_bounds(query.window_days)
    events = source.fetch(user.id, since)
    snapshot = aggregate_with_comparison(events, boundary=boundary, query=query)

    log_performance(
        operation="dashboard_snapshot",
        duration_ms=(time.time() - start) * 1000,
        additional_data={
            "user_id": user.id,
            "window": window,
            "events": len(events),
            "request_id": get_request_id(request),
        }
    )
    return DashboardResponse.from_snapshot(snapshot, _filters(window, query))


@router.get("/live", response_model=LiveDashboardResponse, summary="Live dashboard snapshot")
async def get_live_dashboard(
    window: str = Query(DEFAULT_DATE_WINDOW),
    platform: Optional[str] = Query(None),
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    user: User = Depends(get_current_user),
    registry: RefresherRegistry = Depends(get_refresher_registry),
) -> LiveDashboardResponse:
    """Last-known-good snapshot; ``stale`` is set after failed or overdue refreshes."""
    query = _dashboard_query(window, platform, status_filter)
    refresher = registry.get_or_start(user.id, query)
    state = refresher.state()
    dashboard = None
    if state.snapshot is not None:
        dashboard = DashboardResponse.from_snapshot(state.snapshot, _filters(window, query))
    return LiveDashboardResponse(
        dashboard=dashboard,
        stale=state.stale,
        last_refreshed_at=state.last_refreshed_at,
        generation=state.generation,
        consecutive_failures=state.consecutive_failures,
        last_error=state.last_error,
        refresh_interval_seconds=state.interval_seconds,
    )


@router.get("/overview", response_model=OverviewResponse, summary="Home tab stat cards")
async def get_overview(
    window: str = Query(DEFAULT_DATE_WINDOW),
    user: User = Depends(get_current_user),
    source: EventSource = Depends(get_event_source),
    db: Session = Depends(get_db),
) -> OverviewResponse:
    query = _dashboard_query(window, None, StatusFilter.ALL)
    since, boundary = comparison_bounds(query.window_days)
    snapshot = aggregate_with_comparison(source.fetch(user.id, since), boundary=boundary, query=query)
    changes = snapshot.changes

    total_links, active_links = db.query(
        func.count(AffiliateLink.id),
        func.coalesce(func.sum(case((AffiliateLink.is_active == True, 1), else_=0)), 0),  # noqa: E712
    ).filter(AffiliateLink.user_id == user.id).one()

    return OverviewResponse(
        window=window,
        total_revenue=round_currency(snapshot.total_revenue),
        total_clicks=snapshot.total_clicks,
        active_links=int(active_links),
        total_links=int(total_links),
        conversions=snapshot.total_conversions,
        conversion_rate=round_pct(percentage(snapshot.total_conversions, snapshot.total_clicks)),
        revenue_change=round_change(changes.revenue_change),
        clicks_change=round_change(changes.clicks_change),
        conversions_change=round_change(changes.conversions_change),
    )


@router.get("/export", summary="Export the dashboard snapshot")
async def export_dashboard(
    window: str = Query(DEFAULT_DATE_WINDOW),
    platform: Optional[str] = Query(None),
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    export_format: ExportFormat = Query(ExportFormat.CSV, alias="format"),
    user: User = Depends(get_current_user),
    source: EventSource = Depends(get_event_source),
):
    query = _dashboard_query(window, platform, status_filter)
    snapshot = aggregate(source.fetch(user.id, window_start(query.window_days)), query=query)
    stamp = utc_now().strftime("%Y%m%d")

    logger.info("Dashboard export", user_id=user.id, window=window, format=export_format.value)
    if export_format == ExportFormat.JSON:
        return JSONResponse(
            content=ExportService.export_snapshot_json(snapshot, window, query.platform, query.status.value),
            headers={"Content-Disposition": f'attachment; filename="dashboard-{window}-{stamp}.json"'},
        )
    return Response(
        content=ExportService.export_snapshot_csv(snapshot),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="dashboard-{window}-{stamp}.csv"'},
    )
