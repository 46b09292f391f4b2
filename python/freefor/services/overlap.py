"""Overlap engine.

Two pieces:
- ``find_overlap`` gathers each requested user's visible *available* entries
  in a window, grouped by user. It is all-or-nothing: one missing or private
  user fails the whole call.
- ``intersect_free_time`` is a sweep over those per-user lists that reports
  the sub-ranges where every user is free at once.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from freefor.config import get_settings
from freefor.db.models import EntryKind
from freefor.errors import ApiErrorCode, InvalidRequestError
from freefor.logging import get_logger
from freefor.schemas.availability import (
    AvailabilityEntryOut,
    OverlapOut,
    TimeWindowOut,
)
from freefor.services import availability, profiles
from freefor.services.time_range import TimeRange

logger = get_logger(__name__)

# Sweep event kinds; ends sort before starts at the same instant so ranges
# that only touch never count as overlapping.
_END = 0
_START = 1


def merge_ranges(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Union of one user's ranges, sorted. Touching ranges are joined."""
    ordered = sorted(ranges, key=lambda r: (r.start, r.end))
    merged: list[TimeRange] = []
    for r in ordered:
        if merged and r.start <= merged[-1].end:
            last = merged[-1]
            if r.end > last.end:
                merged[-1] = TimeRange(last.start, r.end)
        else:
            merged.append(r)
    return merged


def intersect_free_time(
    per_user_ranges: Sequence[Iterable[TimeRange]],
    window: TimeRange | None = None,
) -> list[TimeRange]:
    """Sub-ranges covered by every user's ranges.

    Each user's list is merged first so self-overlap cannot inflate coverage.
    Results are clipped to ``window`` when given and never zero-length.

    Args:
        per_user_ranges: One iterable of ranges per user.
        window: Optional clip window.

    Returns:
        Disjoint ranges in start order.
    """
    k = len(per_user_ranges)
    if k == 0:
        return []

    events: list[tuple[datetime, int]] = []
    for ranges in per_user_ranges:
        for r in merge_ranges(ranges):
            if window is not None:
                r = r.intersection(window)
                if r is None:
                    continue
            events.append((r.start, _START))
            events.append((r.end, _END))
    events.sort()

    result: list[TimeRange] = []
    active = 0
    opened_at: datetime | None = None
    for instant, kind in events:
        if kind == _START:
            active += 1
            if active == k:
                opened_at = instant
        else:
            if active == k and opened_at is not None and opened_at < instant:
                result.append(TimeRange(opened_at, instant))
            active -= 1
            opened_at = None
    return result


def _entries_to_ranges(entries: Iterable[AvailabilityEntryOut]) -> list[TimeRange]:
    return [TimeRange(e.start, e.end) for e in entries]


def find_overlap(
    db: Session, user_ids: Sequence[UUID], start: datetime, end: datetime
) -> OverlapOut:
    """Per-user available candidates in ``[start, end)`` for a set of public users.

    Args:
        db: Database session.
        user_ids: 1..OVERLAP_MAX_USERS user ids; duplicates are collapsed.
        start: Window start (inclusive).
        end: Window end (exclusive).

    Returns:
        The grouped candidates plus the windows where all users are free.
        Users with no entries map to an empty list.

    Raises:
        ValidationError(E_INVALID_RANGE): If start >= end.
        InvalidRequestError(E_TOO_MANY_USERS): If the id count is out of bounds.
        NotFoundError(E_USER_NOT_FOUND): If any user is missing or private.
    """
    window = TimeRange(start, end)

    unique_ids = list(dict.fromkeys(user_ids))
    max_users = get_settings().overlap_max_users
    if not 1 <= len(unique_ids) <= max_users:
        raise InvalidRequestError(
            ApiErrorCode.E_TOO_MANY_USERS, f"Provide between 1 and {max_users} users"
        )

    # Resolve every user before reading any calendar
    users = [profiles.get_public_user(db, user_id) for user_id in unique_ids]

    available_only = {EntryKind.available.value}
    entries_by_user: dict[UUID, list[AvailabilityEntryOut]] = {}
    for user in users:
        entries_by_user[user.id] = availability.query_window(
            db, user.id, window.start, window.end, kinds=available_only
        )

    common = intersect_free_time(
        [_entries_to_ranges(entries) for entries in entries_by_user.values()], window
    )

    logger.info(
        "overlap_computed",
        user_count=len(users),
        common_window_count=len(common),
    )
    return OverlapOut(
        window=TimeWindowOut(start=window.start, end=window.end),
        users=[profiles.public_profile_to_out(u) for u in users],
        entries_by_user=entries_by_user,
        common_windows=[TimeWindowOut(start=r.start, end=r.end) for r in common],
    )

