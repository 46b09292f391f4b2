"""Profile store service layer.

Owns the users table: bootstrap on first login, public profile lookup,
profile editing, and the explore listing. Other components only ask this
module two questions: does the user exist, and is the profile public.
"""

import re
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freefor.db.models import User
from freefor.db.session import transaction
from freefor.db.types import utcnow
from freefor.errors import (
    ApiErrorCode,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    ValidationError,
)
from freefor.logging import get_logger
from freefor.schemas.profile import (
    PageInfo,
    ProfileOut,
    ProfilePage,
    PublicProfileOut,
    UpdateProfileRequest,
    UsernameCheckOut,
)

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

USERNAME_RE = re.compile(r"^[a-z0-9_-]{3,30}$")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50


# =============================================================================
# Helper Functions
# =============================================================================


def normalize_username(username: str) -> str:
    """Lowercase and validate a username.

    Raises:
        ValidationError(E_USERNAME_INVALID): If it is not 3-30 chars of [a-z0-9_-].
    """
    normalized = username.strip().lower()
    if not USERNAME_RE.match(normalized):
        raise ValidationError(
            ApiErrorCode.E_USERNAME_INVALID,
            "Username must be 3-30 characters of letters, numbers, underscores, or hyphens",
        )
    return normalized


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(
            ApiErrorCode.E_VALIDATION_FAILED, f"Unknown timezone: {name}"
        ) from None
    return name


def public_profile_to_out(user: User) -> PublicProfileOut:
    return PublicProfileOut(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        bio=user.bio,
        preferred_games=list(user.preferred_games or []),
        platforms=list(user.platforms or []),
        timezone=user.timezone,
        region=user.region,
        last_active_at=user.last_active_at,
    )


def profile_to_out(user: User) -> ProfileOut:
    return ProfileOut(
        **public_profile_to_out(user).model_dump(),
        is_public=user.is_public,
        created_at=user.created_at,
    )


def clamp_page(page: int, limit: int) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to [1, MAX_PAGE_LIMIT]."""
    return max(page, 1), min(max(limit, 1), MAX_PAGE_LIMIT)


# =============================================================================
# Service Functions
# =============================================================================


def ensure_user(db: Session, user_id: UUID) -> UUID:
    """Ensure a users row exists for an authenticated subject.

    Race-safe and idempotent: a concurrent insert of the same id loses with
    an IntegrityError, which is treated as success. Also refreshes
    ``last_active_at`` for an existing user.

    Args:
        db: Database session.
        user_id: The user's ID (from JWT sub claim).

    Returns:
        The user ID.
    """
    user = db.get(User, user_id)
    if user is not None:
        with transaction(db):
            user.last_active_at = utcnow()
        return user_id

    try:
        with transaction(db):
            db.add(User(id=user_id))
        logger.info("user_bootstrapped", bootstrapped_user_id=str(user_id))
    except IntegrityError:
        # Lost race: another request created the row
        logger.info("user_bootstrap_race_lost", bootstrapped_user_id=str(user_id))
    return user_id


def get_profile(db: Session, user_id: UUID) -> ProfileOut:
    """Return the viewer's own profile.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If the user row does not exist.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return profile_to_out(user)


def get_public_user(db: Session, user_id: UUID) -> User:
    """Load a user whose profile is public.

    Private and missing users are indistinguishable to the caller.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If the user is missing or private.
    """
    user = db.get(User, user_id)
    if user is None or not user.is_public:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def is_public(db: Session, user_id: UUID) -> bool:
    """Whether ``user_id`` exists and has a public profile."""
    user = db.get(User, user_id)
    return user is not None and user.is_public


def get_public_profile_by_username(db: Session, username: str) -> PublicProfileOut:
    """Look up a public profile by username (case-insensitive).

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If no public profile has that username.
    """
    user = db.scalar(select(User).where(User.username == username.strip().lower()))
    if user is None or not user.is_public:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return public_profile_to_out(user)


def update_profile(db: Session, user_id: UUID, req: UpdateProfileRequest) -> ProfileOut:
    """Apply a partial profile update.

    Args:
        db: Database session.
        user_id: The viewer's ID.
        req: The update request (all fields optional).

    Returns:
        The updated profile.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If the user row does not exist.
        ValidationError: On an invalid username or timezone.
        ConflictError(E_USERNAME_TAKEN): If another user already has the username.
    """
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")

    fields = req.model_dump(exclude_unset=True)

    if fields.get("username") is not None:
        username = normalize_username(fields["username"])
        taken = db.scalar(select(User.id).where(User.username == username, User.id != user_id))
        if taken is not None:
            raise ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username is already taken")
        user.username = username

    if fields.get("timezone") is not None:
        user.timezone = validate_timezone(fields["timezone"])

    if "display_name" in fields:
        user.display_name = fields["display_name"]
    if "bio" in fields:
        user.bio = fields["bio"]
    if fields.get("preferred_games") is not None:
        # Dedupe while keeping the user's order
        games = [g.strip() for g in fields["preferred_games"] if g and g.strip()]
        user.preferred_games = list(dict.fromkeys(games))
    if fields.get("platforms") is not None:
        user.platforms = list(dict.fromkeys(fields["platforms"]))
    if "region" in fields:
        user.region = fields["region"]
    if fields.get("is_public") is not None:
        user.is_public = fields["is_public"]

    try:
        with transaction(db):
            db.flush()
    except IntegrityError as e:
        # Concurrent claim of the same username
        raise ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username is already taken") from e

    db.refresh(user)
    logger.info("profile_updated", fields=sorted(fields))
    return profile_to_out(user)


def explore_profiles(
    db: Session,
    viewer_id: UUID | None = None,
    game: str | None = None,
    platform: str | None = None,
    region: str | None = None,
    timezone: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> ProfilePage:
    """List public profiles matching optional filters, most recently active first.

    Users without a username are not discoverable. The viewer is excluded
    from their own results. Game and platform filters match list membership;
    search matches username or display name as a case-insensitive substring.
    """
    page, limit = clamp_page(page, limit)

    stmt = select(User).where(User.is_public.is_(True), User.username.is_not(None))
    if viewer_id is not None:
        stmt = stmt.where(User.id != viewer_id)
    if region:
        stmt = stmt.where(User.region == region)
    if timezone:
        stmt = stmt.where(User.timezone == timezone)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(User.username).like(pattern),
                func.lower(func.coalesce(User.display_name, "")).like(pattern),
            )
        )
    stmt = stmt.order_by(User.last_active_at.desc(), User.id)

    users = list(db.scalars(stmt))

    # JSON list membership is filtered here so the query stays portable
    if game:
        wanted = game.strip().lower()
        users = [u for u in users if any(g.lower() == wanted for g in (u.preferred_games or []))]
    if platform:
        users = [u for u in users if platform in (u.platforms or [])]

    total = len(users)
    offset = (page - 1) * limit
    items = users[offset : offset + limit]

    return ProfilePage(
        profiles=[public_profile_to_out(u) for u in items],
        page=PageInfo(page=page, limit=limit, total=total, has_more=offset + len(items) < total),
    )


def check_username(db: Session, username: str) -> UsernameCheckOut:
    """Report whether a username is well-formed and unclaimed."""
    try:
        normalized = normalize_username(username)
    except InvalidRequestError:
        return UsernameCheckOut(username=username, available=False, valid=False)
    taken = db.scalar(select(User.id).where(User.username == normalized))
    return UsernameCheckOut(username=normalized, available=taken is None, valid=True)

