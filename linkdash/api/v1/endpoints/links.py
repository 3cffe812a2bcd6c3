"""
Link registry endpoints.

Domain errors (LinkValidationError, LinkNotFoundError) propagate to the
application exception handlers, which map them to 422 / 404.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status, Query, Request
from sqlalchemy.orm import Session
import time
from linkdash.api.deps import get_db, get_current_user, get_request_id
from linkdash.models.db import User
from linkdash.models.schemas.base import ResponseBase
from linkdash.models.schemas.links import LinkActiveUpdate, LinkCreate, LinkRead
from linkdash.services import link_registry
from linkdash.services.link_registry import LinkWithMetrics
from linkdash.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)


@router.get("/", response_model=List[LinkRead], summary="List links with metrics")
async def list_links(
    request: Request,
    active: Optional[bool] = Query(None, description="Only active (true) or paused (false) links"),
    platform: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive match on title or platform"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[LinkRead]:
    start = time.time()
    items = link_registry.list_links(db, user.id, active=active, platform=platform, search=search)
    log_performance(
        operation="list_links",
        duration_ms=(time.time() - start) * 1000,
        additional_data={"user_id": user.id, "count": len(items), "request_id": get_request_id(request)}
    )
    return [LinkRead.from_metrics(item) for item in items]


@router.get("/platforms", response_model=List[str], summary="Platforms used by the user's links")
async def list_platforms(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> List[str]:
    return link_registry.platforms_in_use(db, user.id)


@router.post(
    "/",
    response_model=LinkRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create link",
    description="Create an affiliate link and generate its short code"
)
async def create_link(
    link_data: LinkCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> LinkRead:
    request_id = get_request_id(request)
    logger.info("Link creation started", user_id=user.id, platform=link_data.platform, request_id=request_id)
    link = link_registry.create_link(db, user.id, link_data, request_id=request_id)
    return LinkRead.from_metrics(LinkWithMetrics(link=link))


@router.patch("/{link_id}/active", response_model=LinkRead, summary="Activate or pause a link")
async def set_link_active(
    link_id: int,
    update: LinkActiveUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> LinkRead:
    link_registry.set_active(db, user.id, link_id, update.is_active, request_id=get_request_id(request))
    return LinkRead.from_metrics(link_registry.get_link_metrics(db, user.id, link_id))


@router.delete("/{link_id}", response_model=ResponseBase, summary="Delete a link and its click history")
async def delete_link(
    link_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ResponseBase:
    link_registry.delete_link(db, user.id, link_id, request_id=get_request_id(request))
    return ResponseBase(message=f"Link {link_id} deleted", data={"link_id": link_id})
