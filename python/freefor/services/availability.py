"""Availability store service layer.

Persists each user's calendar of available / busy / override entries and
answers window queries over it.

Rules enforced here:
- Every stored range satisfies start < end (rejected, never corrected).
- Only manual entries can be edited or deleted by their owner; entries
  imported from an external calendar are read-only until the calendar is
  disconnected.
- Window queries are half-open: an entry ending exactly at the window start
  is not returned.
- Recurring entries are templates; window queries expand them into the
  occurrences that fall inside the window.

Service functions correspond 1:1 with route handlers.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freefor.db.models import AvailabilityEntry, EntryKind, EntryOrigin
from freefor.db.session import transaction
from freefor.db.types import utcnow
from freefor.errors import (
    ApiErrorCode,
    ImmutableSourceError,
    NotFoundError,
    ValidationError,
)
from freefor.logging import get_logger
from freefor.schemas.availability import (
    AvailabilityEntryOut,
    CreateAvailabilityRequest,
    RecurrenceIn,
    RecurrenceOut,
    UpdateAvailabilityRequest,
)
from freefor.services import profiles
from freefor.services.recurrence import RecurrenceRule, expand
from freefor.services.time_range import TimeRange, ensure_aware

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_LABELS = {
    EntryKind.available.value: "Available for games",
    EntryKind.busy.value: "Busy",
    EntryKind.override.value: "Override",
}

DEFAULT_WINDOW = timedelta(days=7)
MAX_WINDOW = timedelta(days=366)


# =============================================================================
# Helper Functions
# =============================================================================


def resolve_window(
    start: datetime | None, end: datetime | None, now: datetime | None = None
) -> TimeRange:
    """Build a query window, defaulting to the next seven days.

    A missing start defaults to now; a missing end defaults to start + 7 days.

    Raises:
        ValidationError: If the window is inverted, naive, or longer than a year.
    """
    if start is None:
        start = now or utcnow()
    ensure_aware(start, "start")
    if end is None:
        end = start + DEFAULT_WINDOW
    window = TimeRange(start, end)
    if window.duration > MAX_WINDOW:
        raise ValidationError(ApiErrorCode.E_INVALID_RANGE, "Query window cannot exceed one year")
    return window


def rule_from_payload(payload: RecurrenceIn) -> RecurrenceRule:
    return RecurrenceRule(
        frequency=payload.frequency,
        interval=payload.interval,
        days_of_week=frozenset(payload.days_of_week),
        until=payload.until,
    ).validate()


def rule_from_entry(entry: AvailabilityEntry) -> RecurrenceRule | None:
    if not entry.is_recurring or entry.recurrence_frequency is None:
        return None
    return RecurrenceRule(
        frequency=entry.recurrence_frequency,
        interval=entry.recurrence_interval or 1,
        days_of_week=frozenset(entry.recurrence_days_of_week or []),
        until=entry.recurrence_until,
    )


def _check_recurrence_payload(
    is_recurring: bool, recurrence: RecurrenceIn | None, start: datetime
) -> RecurrenceRule | None:
    if not is_recurring:
        if recurrence is not None:
            raise ValidationError(
                ApiErrorCode.E_INVALID_RECURRENCE,
                "recurrence is only allowed when is_recurring is true",
            )
        return None
    if recurrence is None:
        raise ValidationError(
            ApiErrorCode.E_INVALID_RECURRENCE, "recurrence is required when is_recurring is true"
        )
    rule = rule_from_payload(recurrence)
    if rule.until is not None and rule.until < start:
        raise ValidationError(
            ApiErrorCode.E_INVALID_RECURRENCE, "recurrence until must not be before the entry start"
        )
    return rule


def _apply_rule(entry: AvailabilityEntry, rule: RecurrenceRule | None) -> None:
    entry.is_recurring = rule is not None
    entry.recurrence_frequency = rule.frequency if rule else None
    entry.recurrence_interval = rule.interval if rule else None
    entry.recurrence_days_of_week = sorted(rule.days_of_week) if rule else None
    entry.recurrence_until = rule.until if rule else None


def entry_to_out(
    entry: AvailabilityEntry,
    occurrence: TimeRange | None = None,
    occurrence_index: int | None = None,
) -> AvailabilityEntryOut:
    """Convert an AvailabilityEntry row (or one of its occurrences) to its schema."""
    rule = rule_from_entry(entry)
    return AvailabilityEntryOut(
        id=entry.id,
        owner_user_id=entry.owner_user_id,
        kind=entry.kind,
        label=entry.label,
        start=occurrence.start if occurrence else entry.start_at,
        end=occurrence.end if occurrence else entry.end_at,
        is_recurring=entry.is_recurring,
        recurrence=(
            RecurrenceOut(
                frequency=rule.frequency,
                interval=rule.interval,
                days_of_week=sorted(rule.days_of_week),
                until=rule.until,
            )
            if rule
            else None
        ),
        origin=entry.origin,
        provider_name=entry.provider_name,
        external_event_id=entry.external_event_id,
        visible=entry.visible,
        occurrence_index=occurrence_index,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def get_entry_for_owner_or_404(
    db: Session, owner_id: UUID, entry_id: UUID
) -> AvailabilityEntry:
    """Load an entry and verify ownership.

    Raises:
        NotFoundError(E_ENTRY_NOT_FOUND): If the entry doesn't exist OR belongs
            to someone else.
    """
    entry = db.get(AvailabilityEntry, entry_id)
    if entry is None or entry.owner_user_id != owner_id:
        raise NotFoundError(ApiErrorCode.E_ENTRY_NOT_FOUND, "Availability entry not found")
    return entry


def _require_manual(entry: AvailabilityEntry) -> None:
    if entry.origin != EntryOrigin.manual.value:
        raise ImmutableSourceError()


# =============================================================================
# Service Functions
# =============================================================================


def create_entry(
    db: Session, owner_id: UUID, req: CreateAvailabilityRequest
) -> AvailabilityEntryOut:
    """Create a manual availability entry.

    Args:
        db: Database session.
        owner_id: The viewer, who becomes the immutable owner.
        req: The entry to create.

    Returns:
        The stored entry.

    Raises:
        ValidationError(E_INVALID_RANGE): If start >= end.
        ValidationError(E_INVALID_RECURRENCE): If the recurrence payload does not
            agree with is_recurring, is itself invalid, or the entry outlasts the
            gap to its next occurrence.
    """
    entry_range = TimeRange(req.start, req.end)
    rule = _check_recurrence_payload(req.is_recurring, req.recurrence, entry_range.start)
    if rule is not None:
        rule.check_fits(entry_range)

    label = (req.label or "").strip() or DEFAULT_LABELS[req.kind]

    entry = AvailabilityEntry(
        owner_user_id=owner_id,
        kind=req.kind,
        label=label,
        start_at=entry_range.start,
        end_at=entry_range.end,
        origin=EntryOrigin.manual.value,
        visible=req.visible,
    )
    _apply_rule(entry, rule)

    with transaction(db):
        db.add(entry)

    logger.info(
        "availability_entry_created",
        entry_id=str(entry.id),
        kind=entry.kind,
        is_recurring=entry.is_recurring,
    )
    return entry_to_out(entry)


def update_entry(
    db: Session, owner_id: UUID, entry_id: UUID, req: UpdateAvailabilityRequest
) -> AvailabilityEntryOut:
    """Patch a manual entry. Last write wins; there is no version check.

    Args:
        db: Database session.
        owner_id: The viewer.
        entry_id: The entry to update.
        req: The update request (all fields optional).

    Returns:
        The updated entry.

    Raises:
        NotFoundError(E_ENTRY_NOT_FOUND): If no such entry is owned by the viewer.
        ImmutableSourceError: If the entry was imported from an external calendar,
            whatever the patch contains.
        ValidationError: If the merged range or recurrence is invalid.
    """
    entry = get_entry_for_owner_or_404(db, owner_id, entry_id)
    _require_manual(entry)

    fields = req.model_dump(exclude_unset=True)

    start = req.start if req.start is not None else entry.start_at
    end = req.end if req.end is not None else entry.end_at
    if "start" in fields or "end" in fields:
        TimeRange(start, end)

    recurrence_touched = "is_recurring" in fields or "recurrence" in fields
    if recurrence_touched:
        is_recurring = req.is_recurring if req.is_recurring is not None else entry.is_recurring
        if "recurrence" in fields:
            rule = _check_recurrence_payload(is_recurring, req.recurrence, start)
        elif is_recurring:
            rule = rule_from_entry(entry)
            if rule is None:
                raise ValidationError(
                    ApiErrorCode.E_INVALID_RECURRENCE,
                    "recurrence is required when is_recurring is true",
                )
        else:
            rule = None
    else:
        rule = rule_from_entry(entry)
        if rule is not None and rule.until is not None and rule.until < start:
            raise ValidationError(
                ApiErrorCode.E_INVALID_RECURRENCE,
                "recurrence until must not be before the entry start",
            )
    if rule is not None and (recurrence_touched or "start" in fields or "end" in fields):
        rule.check_fits(TimeRange(start, end))

    with transaction(db):
        if req.kind is not None:
            entry.kind = req.kind
            if "label" not in fields and entry.label in DEFAULT_LABELS.values():
                entry.label = DEFAULT_LABELS[req.kind]
        if "label" in fields:
            entry.label = (req.label or "").strip() or DEFAULT_LABELS[entry.kind]
        entry.start_at = start
        entry.end_at = end
        if req.visible is not None:
            entry.visible = req.visible
        if recurrence_touched:
            _apply_rule(entry, rule)
        entry.updated_at = utcnow()

    logger.info("availability_entry_updated", entry_id=str(entry.id), fields=sorted(fields))
    return entry_to_out(entry)


def delete_entry(db: Session, owner_id: UUID, entry_id: UUID) -> None:
    """Delete a manual entry.

    Raises:
        NotFoundError(E_ENTRY_NOT_FOUND): If no such entry is owned by the viewer.
        ImmutableSourceError: If the entry was imported from an external calendar.
    """
    entry = get_entry_for_owner_or_404(db, owner_id, entry_id)
    _require_manual(entry)

    with transaction(db):
        db.delete(entry)

    logger.info("availability_entry_deleted", entry_id=str(entry_id))


def query_window(
    db: Session,
    owner_id: UUID,
    start: datetime,
    end: datetime,
    expand_recurring: bool = True,
    kinds: set[str] | None = None,
    include_hidden: bool = False,
) -> list[AvailabilityEntryOut]:
    """Visible entries owned by ``owner_id`` that overlap ``[start, end)``.

    Args:
        db: Database session.
        owner_id: Whose calendar to read.
        start: Window start (inclusive).
        end: Window end (exclusive).
        expand_recurring: When true, recurring templates contribute one item
            per occurrence inside the window, each carrying the template id
            and its ``occurrence_index`` within this result. When false, the
            template's own range is matched like any other entry.
        kinds: Restrict to these entry kinds (all kinds when None).
        include_hidden: Also return entries the owner marked invisible.

    Returns:
        Entries ordered by start ascending.

    Raises:
        ValidationError: If the window is invalid.
    """
    window = TimeRange(start, end)

    stmt = select(AvailabilityEntry).where(
        AvailabilityEntry.owner_user_id == owner_id,
        AvailabilityEntry.start_at < window.end,
    )
    if not include_hidden:
        stmt = stmt.where(AvailabilityEntry.visible.is_(True))
    if kinds:
        stmt = stmt.where(AvailabilityEntry.kind.in_(sorted(kinds)))
    if not expand_recurring:
        stmt = stmt.where(AvailabilityEntry.end_at > window.start)
    else:
        # Recurring templates may start long before the window
        stmt = stmt.where(
            (AvailabilityEntry.end_at > window.start) | AvailabilityEntry.is_recurring.is_(True)
        )

    results: list[AvailabilityEntryOut] = []
    for entry in db.scalars(stmt):
        rule = rule_from_entry(entry) if expand_recurring else None
        if rule is None:
            results.append(entry_to_out(entry))
            continue
        template = TimeRange(entry.start_at, entry.end_at)
        for index, occurrence in enumerate(expand(template, rule, window)):
            results.append(entry_to_out(entry, occurrence, index))

    results.sort(key=lambda e: (e.start, e.end, str(e.id)))
    return results


def query_window_public(
    db: Session, owner_id: UUID, start: datetime, end: datetime
) -> list[AvailabilityEntryOut]:
    """Same as query_window, for a profile that must be public.

    Raises:
        NotFoundError(E_USER_NOT_FOUND): If the owner is missing or private.
    """
    if not profiles.is_public(db, owner_id):
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return query_window(db, owner_id, start, end)


def list_my_entries(
    db: Session,
    owner_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[AvailabilityEntryOut]:
    """The viewer's own window, hidden entries included, defaulting to the next seven days."""
    window = resolve_window(start, end)
    return query_window(db, owner_id, window.start, window.end, include_hidden=True)


def list_public_entries(
    db: Session,
    owner_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[AvailabilityEntryOut]:
    """Another user's public window, defaulting to the next seven days."""
    window = resolve_window(start, end)
    return query_window_public(db, owner_id, window.start, window.end)


def create_synced_entry(
    db: Session,
    owner_id: UUID,
    provider_name: str,
    external_event_id: str,
    label: str,
    entry_range: TimeRange,
) -> bool:
    """Insert a busy entry imported from an external calendar.

    Existing entries for the same owner / provider / external id are left
    untouched.

    Returns:
        True if a new entry was created, False if one already existed
        (including when a concurrent sync inserted it first).
    """
    existing = db.scalar(
        select(AvailabilityEntry.id).where(
            AvailabilityEntry.owner_user_id == owner_id,
            AvailabilityEntry.provider_name == provider_name,
            AvailabilityEntry.external_event_id == external_event_id,
        )
    )
    if existing is not None:
        return False

    entry = AvailabilityEntry(
        owner_user_id=owner_id,
        kind=EntryKind.busy.value,
        label=(label or "").strip()[:100] or DEFAULT_LABELS[EntryKind.busy.value],
        start_at=entry_range.start,
        end_at=entry_range.end,
        is_recurring=False,
        origin=EntryOrigin.externally_synced.value,
        external_event_id=external_event_id,
        provider_name=provider_name,
        visible=True,
    )
    try:
        with transaction(db):
            db.add(entry)
    except IntegrityError:
        # Lost race with a concurrent sync of the same event
        logger.info("synced_entry_race_lost", external_event_id=external_event_id)
        return False
    return True


def delete_synced_entries(db: Session, owner_id: UUID, provider_name: str) -> int:
    """Delete every entry imported from ``provider_name`` for ``owner_id``.

    Returns:
        Number of entries deleted.
    """
    with transaction(db):
        result = db.execute(
            delete(AvailabilityEntry).where(
                AvailabilityEntry.owner_user_id == owner_id,
                AvailabilityEntry.origin == EntryOrigin.externally_synced.value,
                AvailabilityEntry.provider_name == provider_name,
            )
        )
    deleted = result.rowcount or 0
    logger.info("synced_entries_deleted", provider_name=provider_name, deleted=deleted)
    return deleted
