"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import users, links, analytics, revenue

api_router = APIRouter()

api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

api_router.include_router(
    links.router,
    prefix="/links",
    tags=["links"]
)

api_router.include_router(
    analytics.router,
    prefix="/analytics",
    tags=["analytics"]
)

api_router.include_router(
    revenue.router,
    prefix="/revenue",
    tags=["revenue"]
)
