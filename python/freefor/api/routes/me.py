"""Current user endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from freefor.api.deps import get_db
from freefor.auth.middleware import Viewer, get_viewer
from freefor.responses import success_response
from freefor.schemas.profile import UpdateProfileRequest
from freefor.services import profiles as profiles_service

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """The authenticated viewer's own profile, including private fields."""
    result = profiles_service.get_profile(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/me/profile")
def update_my_profile(
    body: UpdateProfileRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Update the viewer's profile.

    Errors:
        E_USERNAME_INVALID (400): Username is not 3-30 chars of [a-z0-9_-].
        E_USERNAME_TAKEN (409): Another user holds the username.
    """
    result = profiles_service.update_profile(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))
