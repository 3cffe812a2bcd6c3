"""Pytest fixtures and factories.

All model modules are imported (via linkdash.models.db) before
Base.metadata.create_all() so relationship targets are configured.
"""
import os
import secrets
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Union
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'linkdash' resolves without an install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
from linkdash.main import app  # type: ignore
from linkdash.database import Base  # type: ignore
from linkdash.api import deps  # type: ignore
from linkdash.jobs.refresh import RefresherRegistry
from linkdash.models.db import AffiliateLink, ClickEvent, Conversion, User
from linkdash.models.db.enums import PayoutStatus
from linkdash.services.event_source import DatabaseEventSource
from linkdash.services.notifier import InMemoryChangeNotifier, remove_change_hooks

# File-based SQLite so the refresher thread and the test thread can each
# open their own connection.
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_linkdash.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Event sources and health checks resolve linkdash.database.SessionLocal at
# call time; point it at the test database.
import linkdash.database as _linkdash_database  # noqa: E402
_linkdash_database.SessionLocal = TestingSessionLocal  # type: ignore


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_linkdash.db")
    except OSError:
        pass


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


app.dependency_overrides[deps.get_db] = _override_get_db


@pytest.fixture(autouse=True)
def app_services(create_test_db):
    """Replicate the lifespan wiring (tests bypass lifespan) and reset state per test."""
    notifier = InMemoryChangeNotifier()
    source = DatabaseEventSource(session_factory=TestingSessionLocal)
    registry = RefresherRegistry(source, notifier, interval_seconds=60.0)
    app.state.notifier = notifier
    app.state.event_source = source
    app.state.refreshers = registry
    yield app.state
    registry.stop_all()
    remove_change_hooks()
    session = TestingSessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def client():
    return TestClient(app)


# ---------- Data factory helpers ----------

@pytest.fixture()
def user_factory(db_session):
    def _create(name: Optional[str] = None, email: Optional[str] = None, is_active: bool = True) -> User:
        suffix = secrets.token_hex(3)
        user = User(
            name=name or f"Creator {suffix}",
            email=email or f"{suffix}@example.com",
            api_key=f"ld_{secrets.token_hex(12)}",
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create


@pytest.fixture()
def link_factory(db_session):
    def _create(
        user: User,
        title: str = "iPhone 15 Pro Max",
        platform: str = "Amazon",
        is_active: bool = True,
        category: str = "Electronics",
        created_at: Optional[datetime] = None,
    ) -> AffiliateLink:
        link = AffiliateLink(
            user_id=user.id,
            title=title,
            original_url="https://www.amazon.com/dp/B0CHX1W1XY?tag=test-20",
            short_code=secrets.token_hex(4),
            platform=platform,
            category=category,
            is_active=is_active,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(link)
        db_session.commit()
        db_session.refresh(link)
        return link
    return _create


ConversionSpec = Union[float, None, tuple]


@pytest.fixture()
def click_factory(db_session):
    """Create a click; ``conversions`` items are an amount (pending) or (amount, PayoutStatus)."""
    def _create(
        link: AffiliateLink,
        clicked_at: Optional[datetime] = None,
        country: Optional[str] = "United States",
        city: Optional[str] = "New York",
        device_type: Optional[str] = "Desktop",
        browser: Optional[str] = "Chrome",
        conversions: Iterable[ConversionSpec] = (),
    ) -> ClickEvent:
        click = ClickEvent(
            link_id=link.id,
            clicked_at=clicked_at or datetime.now(timezone.utc) - timedelta(minutes=5),
            country=country,
            city=city,
            device_type=device_type,
            browser=browser,
        )
        for spec in conversions:
            amount, status = spec if isinstance(spec, tuple) else (spec, PayoutStatus.PENDING)
            click.conversions.append(Conversion(commission_amount=amount, payout_status=status))
        db_session.add(click)
        db_session.commit()
        db_session.refresh(click)
        return click
    return _create


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {user.api_key}"}
    return _headers


@pytest.fixture()
def session_factory():
    return TestingSessionLocal
