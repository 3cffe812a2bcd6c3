"""
User endpoints: sign-up (issues the dashboard API key) and profile.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import time
from linkdash.api.deps import get_db, get_current_user, get_request_id
from linkdash.models.db import User
from linkdash.models.schemas.users import UserCreate, UserCreated, UserRead
from linkdash.utils import get_logger, log_business_event, log_performance
import secrets
import string

router = APIRouter()
logger = get_logger(__name__)

API_KEY_PREFIX = "ld_"


def generate_api_key() -> str:
    """Generate a secure API key."""
    alphabet = string.ascii_letters + string.digits
    return API_KEY_PREFIX + ''.join(secrets.choice(alphabet) for _ in range(32))


@router.post(
    "/",
    response_model=UserCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create new user",
    description="Register a dashboard user and return its API key"
)
async def create_user(
    user_data: UserCreate,
    request: Request,
    db: Session = Depends(get_db)
) -> UserCreated:
    start_time = time.time()
    request_id = get_request_id(request)

    existing = db.query(User).filter(User.email == user_data.email).first()
    if existing:
        logger.warning(
            "User creation failed: duplicate email",
            existing_user_id=existing.id,
            request_id=request_id
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"User with email '{user_data.email}' already exists"
        )

    new_user = User(name=user_data.name, email=user_data.email, api_key=generate_api_key())
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("User creation failed: integrity error", request_id=request_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User could not be created (duplicate email or key)"
        )
    db.refresh(new_user)

    log_business_event(
        event_type="user_created",
        details={"user_name": new_user.name, "api_key_generated": True},
        user_id=new_user.id,
        request_id=request_id
    )
    log_performance(
        operation="create_user",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"user_id": new_user.id}
    )
    return UserCreated.model_validate(new_user)


@router.get("/me", response_model=UserRead, summary="Current user")
async def read_me(user: User = Depends(get_current_user)) -> UserRead:
    return UserRead.model_validate(user)
