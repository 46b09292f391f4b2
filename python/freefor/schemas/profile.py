"""Profile-related Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PlatformValue = Literal["PC", "PlayStation", "Xbox", "Switch", "Mobile", "VR"]

USERNAME_PATTERN = r"^[A-Za-z0-9_-]{3,30}$"


class UpdateProfileRequest(BaseModel):
    """Request body for editing the viewer's profile. Omitted fields are kept."""

    username: str | None = Field(default=None, pattern=USERNAME_PATTERN)
    display_name: str | None = Field(default=None, min_length=1, max_length=50)
    bio: str | None = Field(default=None, max_length=500)
    preferred_games: list[str] | None = Field(default=None, max_length=50)
    platforms: list[PlatformValue] | None = None
    timezone: str | None = Field(default=None, max_length=64)
    region: str | None = Field(default=None, max_length=64)
    is_public: bool | None = None


class PublicProfileOut(BaseModel):
    """Profile fields visible to other users."""

    id: UUID
    username: str | None
    display_name: str | None
    bio: str | None
    preferred_games: list[str]
    platforms: list[str]
    timezone: str
    region: str | None
    last_active_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileOut(PublicProfileOut):
    """The viewer's own profile."""

    is_public: bool
    created_at: datetime


class PageInfo(BaseModel):
    page: int
    limit: int
    total: int
    has_more: bool


class ProfilePage(BaseModel):
    profiles: list[PublicProfileOut]
    page: PageInfo


class UsernameCheckOut(BaseModel):
    username: str
    available: bool
    valid: bool
