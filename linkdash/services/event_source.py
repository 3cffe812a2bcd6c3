"""Click event sources feeding the aggregator.

One interface, two implementations selected by ``EVENT_SOURCE_BACKEND``:

* ``database`` - live rows read through SQLAlchemy.
* ``fixture``  - a static sample data set (demo mode, frontend work offline).

Contract for ``fetch(user_id, since)``: only clicks on links owned by
``user_id`` (tenant isolation), only ``clicked_at >= since``, newest first,
each joined with its link (title, platform, active flag) and conversions.
Any backend failure surfaces as ``EventSourceError``.
"""
from __future__ import annotations

import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, selectinload

from linkdash.config import EVENT_SOURCE_BACKEND
from linkdash.exceptions import EventSourceError
from linkdash.models.db import AffiliateLink, ClickEvent
from linkdash.services.aggregator import (
    ClickEventRecord,
    ConversionRecord,
    normalize_event,
    normalize_amount,
    normalize_text,
)
from linkdash.utils import get_logger, timed
from linkdash.utils.time import as_utc, utc_now

logger = get_logger(__name__)


class EventSource(ABC):
    name: str = "base"

    @abstractmethod
    def fetch(self, user_id: int, since: datetime) -> list[ClickEventRecord]:
        """Return the user's click events with ``clicked_at >= since``, newest first."""
        pass

    def health_check(self) -> bool:
        return True


class DatabaseEventSource(EventSource):
    """Reads click events from the application database.

    A new session is opened per fetch so the source can be shared between
    request handlers and the background refresher thread.
    """
    name = "database"

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _open_session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        # Resolved at call time so a rebound SessionLocal (tests) is honoured
        from linkdash import database
        return database.SessionLocal()

    def fetch(self, user_id: int, since: datetime) -> list[ClickEventRecord]:
        session = self._open_session()
        try:
            with timed("event_source.fetch", backend=self.name, user_id=user_id) as perf:
                rows = (
                    session.query(ClickEvent)
                    .join(ClickEvent.link)
                    .filter(AffiliateLink.user_id == user_id, ClickEvent.clicked_at >= since)
                    .options(contains_eager(ClickEvent.link), selectinload(ClickEvent.conversions))
                    .order_by(ClickEvent.clicked_at.desc(), ClickEvent.id.desc())
                    .all()
                )
                records = [self._to_record(row) for row in rows]
                perf["rows"] = len(records)
            return records
        except SQLAlchemyError as e:
            logger.error("Click event fetch failed", user_id=user_id, error=str(e), exc_info=True)
            raise EventSourceError(f"Database fetch failed: {e}") from e
        finally:
            session.close()

    @staticmethod
    def _to_record(row: ClickEvent) -> ClickEventRecord:
        link = row.link
        return ClickEventRecord(
            id=row.id,
            clicked_at=as_utc(row.clicked_at),
            link_id=link.id,
            link_title=normalize_text(link.title),
            platform=normalize_text(link.platform),
            link_active=bool(link.is_active),
            country=normalize_text(row.country),
            city=normalize_text(row.city),
            device_type=normalize_text(row.device_type),
            browser=normalize_text(row.browser),
            conversions=tuple(
                ConversionRecord(
                    commission_amount=normalize_amount(c.commission_amount),
                    payout_status=c.payout_status.value if c.payout_status else "pending",
                    converted_at=as_utc(c.converted_at) if c.converted_at else None,
                )
                for c in row.conversions
            ),
        )

    def health_check(self) -> bool:
        from sqlalchemy import text
        session = self._open_session()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("Event source health check failed", backend=self.name, error=str(e))
            return False
        finally:
            session.close()


# --------------------------------- fixture --------------------------------- #

_SAMPLE_LINKS: tuple[dict[str, Any], ...] = (
    {"id": 1, "title": "iPhone 15 Pro Max - Amazon", "platform": "Amazon", "is_active": True},
    {"id": 2, "title": "MacBook Air M3 Guide", "platform": "Amazon", "is_active": True},
    {"id": 3, "title": "Samsung Galaxy S24", "platform": "Flipkart", "is_active": True},
    {"id": 4, "title": "Digital Marketing Course", "platform": "ClickBank", "is_active": False},
    {"id": 5, "title": "Standing Desk Roundup", "platform": "ShareASale", "is_active": True},
)
_SAMPLE_COUNTRIES = (
    ("United States", "New York"),
    ("United States", "Austin"),
    ("Canada", "Toronto"),
    ("United Kingdom", "London"),
    ("Australia", "Sydney"),
    ("Germany", "Berlin"),
    ("India", "Bengaluru"),
    (None, None),
)
_SAMPLE_DEVICES = ("Desktop", "Desktop", "Mobile", "Mobile", "Tablet", None)
_SAMPLE_BROWSERS = ("Chrome", "Safari", "Firefox", "Edge", None)


def build_sample_rows(now: Optional[datetime] = None, *, count: int = 240, seed: int = 42) -> list[dict[str, Any]]:
    """Deterministic sample click rows spread over the last 365 days."""
    rng = random.Random(seed)
    anchor = (now or utc_now()).replace(microsecond=0)
    rows: list[dict[str, Any]] = []
    for i in range(count):
        # Skew towards recent days so every window has data
        age_days = min(364, int(rng.expovariate(1 / 30)))
        country, city = rng.choice(_SAMPLE_COUNTRIES)
        link = rng.choice(_SAMPLE_LINKS)
        conversions = []
        if rng.random() < 0.18:
            conversions.append({
                "commission_amount": round(rng.uniform(2, 60), 2) if rng.random() > 0.1 else None,
                "payout_status": rng.choice(("pending", "pending", "processing", "paid")),
            })
        rows.append({
            "id": f"fx-{i + 1}",
            "clicked_at": anchor - timedelta(days=age_days, minutes=rng.randint(0, 1439)),
            "link": dict(link),
            "country": country,
            "city": city,
            "device_type": rng.choice(_SAMPLE_DEVICES),
            "browser": rng.choice(_SAMPLE_BROWSERS),
            "conversions": conversions,
        })
    return rows


class FixtureEventSource(EventSource):
    """Serves a fixed, in-memory data set to every user.

    Rows may be passed explicitly (tests); by default a deterministic sample
    set anchored at construction time is used.
    """
    name = "fixture"

    def __init__(self, rows: Optional[Iterable[Mapping[str, Any] | ClickEventRecord]] = None):
        source_rows = rows if rows is not None else build_sample_rows()
        self._records: tuple[ClickEventRecord, ...] = tuple(
            sorted((normalize_event(r) for r in source_rows), key=lambda r: r.clicked_at, reverse=True)
        )

    def fetch(self, user_id: int, since: datetime) -> list[ClickEventRecord]:
        bound = as_utc(since)
        return [r for r in self._records if r.clicked_at >= bound]


def get_event_source(backend: Optional[str] = None, **kwargs: Any) -> EventSource:
    """Return the configured event source.

    Args:
        backend: "database" or "fixture"; defaults to EVENT_SOURCE_BACKEND
        kwargs: forwarded to the implementation (session_factory / rows)
    """
    selected = (backend or EVENT_SOURCE_BACKEND).strip().lower()
    if selected == "database":
        source: EventSource = DatabaseEventSource(session_factory=kwargs.get("session_factory"))
    elif selected == "fixture":
        source = FixtureEventSource(rows=kwargs.get("rows"))
    else:
        raise ValueError(f"Unknown event source backend: {selected!r}")
    logger.info("Event source selected", backend=source.name)
    return source


__all__ = [
    "EventSource",
    "DatabaseEventSource",
    "FixtureEventSource",
    "build_sample_rows",
    "get_event_source",
]
