"""Profile discovery routes.

Public reads: anonymous callers are allowed. Private profiles are never
returned.

IMPORTANT: /profiles/check-username/{username} must be registered BEFORE
/profiles/{username}.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from freefor.api.deps import get_db
from freefor.auth.middleware import Viewer, get_optional_viewer
from freefor.responses import success_response
from freefor.schemas.profile import PlatformValue
from freefor.services import profiles as profiles_service

router = APIRouter()


@router.get("/profiles")
def explore_profiles(
    viewer: Annotated[Viewer | None, Depends(get_optional_viewer)],
    db: Annotated[Session, Depends(get_db)],
    game: str | None = Query(default=None, max_length=100),
    platform: PlatformValue | None = None,
    region: str | None = Query(default=None, max_length=100),
    timezone: str | None = Query(default=None, max_length=64),
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, description="Maximum results (clamped to 50)"),
) -> dict:
    """Browse public profiles. The viewer, when signed in, is excluded."""
    result = profiles_service.explore_profiles(
        db,
        viewer_id=viewer.user_id if viewer else None,
        game=game,
        platform=platform,
        region=region,
        timezone=timezone,
        search=search,
        page=page,
        limit=limit,
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/profiles/check-username/{username}")
def check_username(
    username: str,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Whether a username is well-formed and unclaimed."""
    result = profiles_service.check_username(db, username)
    return success_response(result.model_dump(mode="json"))


@router.get("/profiles/{username}")
def get_profile_by_username(
    username: str,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """A public profile by username.

    Errors:
        E_USER_NOT_FOUND (404): No public profile has that username.
    """
    result = profiles_service.get_public_profile_by_username(db, username)
    return success_response(result.model_dump(mode="json"))
