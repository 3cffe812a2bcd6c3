"""
Link registry: CRUD over a user's affiliate links plus derived metrics.

Derived metrics (clicks, conversions, revenue) are never stored. They are
computed with one aggregate subquery per child table, grouped by link, and
outer-joined to the link rows. Joining clicks and conversions directly would
repeat each click once per conversion and inflate the counts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkdash.config import LINK_SETTINGS, SHORT_URL_SETTINGS
from linkdash.exceptions import LinkNotFoundError, LinkValidationError, ShortCodeExhaustedError
from linkdash.models.db import AffiliateLink, ClickEvent, Conversion
from linkdash.utils import get_logger, log_business_event
from linkdash.utils.link_processing import clean_destination_url, generate_short_code, validate_url_format
from linkdash.utils.metrics import percentage

logger = get_logger(__name__)


@dataclass
class LinkWithMetrics:
    link: AffiliateLink
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0

    @property
    def conversion_rate(self) -> float:
        return percentage(self.conversions, self.clicks)


def _metrics_subqueries(db: Session, user_id: int):
    clicks_sq = (
        db.query(
            ClickEvent.link_id.label("link_id"),
            func.count(ClickEvent.id).label("clicks"),
        )
        .join(AffiliateLink, AffiliateLink.id == ClickEvent.link_id)
        .filter(AffiliateLink.user_id == user_id)
        .group_by(ClickEvent.link_id)
        .subquery()
    )
    conversions_sq = (
        db.query(
            ClickEvent.link_id.label("link_id"),
            func.count(Conversion.id).label("conversions"),
            func.coalesce(func.sum(Conversion.commission_amount), 0).label("revenue"),
        )
        .select_from(Conversion)
        .join(ClickEvent, ClickEvent.id == Conversion.click_id)
        .join(AffiliateLink, AffiliateLink.id == ClickEvent.link_id)
        .filter(AffiliateLink.user_id == user_id)
        .group_by(ClickEvent.link_id)
        .subquery()
    )
    return clicks_sq, conversions_sq


def list_links(
    db: Session,
    user_id: int,
    *,
    active: Optional[bool] = None,
    platform: Optional[str] = None,
    search: Optional[str] = None,
) -> list[LinkWithMetrics]:
    """Return the user's links, newest first, each with its derived metrics.

    ``search`` is a case-insensitive substring match on title or platform.
    """
    clicks_sq, conversions_sq = _metrics_subqueries(db, user_id)
    query = (
        db.query(
            AffiliateLink,
            func.coalesce(clicks_sq.c.clicks, 0),
            func.coalesce(conversions_sq.c.conversions, 0),
            func.coalesce(conversions_sq.c.revenue, 0),
        )
        .outerjoin(clicks_sq, clicks_sq.c.link_id == AffiliateLink.id)
        .outerjoin(conversions_sq, conversions_sq.c.link_id == AffiliateLink.id)
        .filter(AffiliateLink.user_id == user_id)
    )
    if active is not None:
        query = query.filter(AffiliateLink.is_active == active)
    if platform:
        query = query.filter(AffiliateLink.platform == platform)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(AffiliateLink.title.ilike(pattern), AffiliateLink.platform.ilike(pattern)))

    rows = query.order_by(AffiliateLink.created_at.desc(), AffiliateLink.id.desc()).all()
    return [
        LinkWithMetrics(link=link, clicks=int(clicks), conversions=int(conversions), revenue=float(revenue))
        for link, clicks, conversions, revenue in rows
    ]


def get_link_metrics(db: Session, user_id: int, link_id: int) -> LinkWithMetrics:
    link = _owned_link(db, user_id, link_id)
    for item in list_links(db, user_id):
        if item.link.id == link.id:
            return item
    return LinkWithMetrics(link=link)


def _field(data: Any, name: str) -> Any:
    if isinstance(data, dict):
        return data.get(name)
    return getattr(data, name, None)


def validate_link_input(data: Any) -> dict[str, str]:
    """Check a link payload and return the cleaned values.

    Raises:
        LinkValidationError: with a field -> reason map for every failing field
    """
    errors: dict[str, str] = {}
    cleaned: dict[str, str] = {}
    max_title = int(LINK_SETTINGS["title_max_length"])  # type: ignore[arg-type]

    for name in ("title", "original_url", "platform"):
        value = _field(data, name)
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            errors[name] = "must not be empty"
        else:
            cleaned[name] = text

    if "title" in cleaned and len(cleaned["title"]) > max_title:
        errors["title"] = f"must be at most {max_title} characters"

    if "original_url" in cleaned:
        url = clean_destination_url(cleaned["original_url"])
        if not validate_url_format(url):
            errors["original_url"] = "must be an http(s) URL with a host"
        else:
            cleaned["original_url"] = url

    if errors:
        raise LinkValidationError(errors)

    category = _field(data, "category")
    category = category.strip() if isinstance(category, str) else ""
    cleaned["category"] = category or str(LINK_SETTINGS["default_category"])
    return cleaned


def _short_code_taken(db: Session, code: str) -> bool:
    return db.query(AffiliateLink.id).filter(AffiliateLink.short_code == code).first() is not None


def create_link(db: Session, user_id: int, data: Any, request_id: Optional[str] = None) -> AffiliateLink:
    """Validate and persist a new link with a fresh short code.

    Nothing is written when validation fails. A short code collision (checked
    up front, or reported by the unique index at commit) triggers a retry with
    a new code, up to ``SHORT_URL_SETTINGS["max_attempts"]`` times.
    """
    cleaned = validate_link_input(data)
    length = int(SHORT_URL_SETTINGS["code_length"])
    attempts = int(SHORT_URL_SETTINGS["max_attempts"])

    for attempt in range(1, attempts + 1):
        code = generate_short_code(length)
        if _short_code_taken(db, code):
            logger.debug("Short code collision", attempt=attempt)
            continue
        link = AffiliateLink(user_id=user_id, short_code=code, is_active=True, **cleaned)
        db.add(link)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Short code collision at commit", attempt=attempt, user_id=user_id)
            continue
        db.refresh(link)
        log_business_event(
            "link_created",
            {"link_id": link.id, "platform": link.platform, "short_code": link.short_code},
            user_id=user_id,
            request_id=request_id,
        )
        return link

    logger.error("Short code generation exhausted", attempts=attempts, user_id=user_id)
    raise ShortCodeExhaustedError(f"No free short code after {attempts} attempts")


def _owned_link(db: Session, user_id: int, link_id: int) -> AffiliateLink:
    link = (
        db.query(AffiliateLink)
        .filter(AffiliateLink.id == link_id, AffiliateLink.user_id == user_id)
        .first()
    )
    if link is None:
        raise LinkNotFoundError(link_id, user_id)
    return link


def set_active(db: Session, user_id: int, link_id: int, active: bool, request_id: Optional[str] = None) -> AffiliateLink:
    link = _owned_link(db, user_id, link_id)
    previous = bool(link.is_active)
    link.is_active = active
    db.commit()
    db.refresh(link)
    log_business_event(
        "link_status_changed",
        {"link_id": link_id, "previous_active": previous, "active": active},
        user_id=user_id,
        request_id=request_id,
    )
    return link


def delete_link(db: Session, user_id: int, link_id: int, request_id: Optional[str] = None) -> None:
    """Delete a link together with its clicks and their conversions."""
    link = _owned_link(db, user_id, link_id)
    db.delete(link)
    db.commit()
    log_business_event("link_deleted", {"link_id": link_id}, user_id=user_id, request_id=request_id)


def platforms_in_use(db: Session, user_id: int) -> list[str]:
    rows = (
        db.query(AffiliateLink.platform)
        .filter(AffiliateLink.user_id == user_id)
        .distinct()
        .order_by(AffiliateLink.platform)
        .all()
    )
    return [platform for (platform,) in rows]


__all__ = [
    "LinkWithMetrics",
    "list_links",
    "get_link_metrics",
    "validate_link_input",
    "create_link",
    "set_active",
    "delete_link",
    "platforms_in_use",
]
