"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from freefor.api.routes.availability import router as availability_router
from freefor.api.routes.calendar import router as calendar_router
from freefor.api.routes.friends import router as friends_router
from freefor.api.routes.health import router as health_router
from freefor.api.routes.me import router as me_router
from freefor.api.routes.notifications import router as notifications_router
from freefor.api.routes.profiles import router as profiles_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(profiles_router, tags=["profiles"])
    api_router.include_router(availability_router, tags=["availability"])
    api_router.include_router(calendar_router, tags=["calendar"])
    api_router.include_router(friends_router, tags=["friends"])
    api_router.include_router(notifications_router, tags=["notifications"])
    return api_router


__all__ = ["create_api_router"]
