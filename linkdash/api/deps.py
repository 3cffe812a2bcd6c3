"""
Dependencies for authentication, database sessions and shared services.
"""
from typing import Generator
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from linkdash import database
from linkdash.jobs.refresh import RefresherRegistry
from linkdash.models.db import User
from linkdash.services.event_source import EventSource, get_event_source as build_event_source
from linkdash.services.notifier import ChangeNotifier, InMemoryChangeNotifier
from linkdash.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = database.SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the dashboard owner from the Bearer API key.

    Raises:
        HTTPException: 401 if the API key is unknown or the user is inactive
    """
    api_key = credentials.credentials
    key_prefix = api_key[:10] + "..." if len(api_key) > 10 else api_key

    user = db.query(User).filter(
        User.api_key == api_key,
        User.is_active == True  # noqa: E712
    ).first()

    if not user:
        logger.warning("Authentication failed: invalid or inactive API key", api_key_prefix=key_prefix)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug("User authenticated", user_id=user.id)
    return user


def get_event_source(request: Request) -> EventSource:
    """Event source created at startup (``app.state.event_source``)."""
    source = getattr(request.app.state, "event_source", None)
    if source is None:
        source = build_event_source()
        request.app.state.event_source = source
    return source


def get_notifier(request: Request) -> ChangeNotifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = InMemoryChangeNotifier()
        request.app.state.notifier = notifier
    return notifier


def get_refresher_registry(
    request: Request,
    event_source: EventSource = Depends(get_event_source),
    notifier: ChangeNotifier = Depends(get_notifier),
) -> RefresherRegistry:
    registry = getattr(request.app.state, "refreshers", None)
    if registry is None:
        registry = RefresherRegistry(event_source, notifier)
        request.app.state.refreshers = registry
    return registry


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")
