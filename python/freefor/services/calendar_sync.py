"""External calendar sync service layer.

Imports busy blocks from a connected external calendar into the
availability store.

Sync semantics:
- Look-ahead window is [now, now + CALENDAR_SYNC_LOOKAHEAD_DAYS).
- Calendars are processed one at a time. A provider failure on one calendar
  is logged and recorded in the summary; the remaining calendars still sync.
- An expired credential marks the connection disconnected and aborts the
  whole sync so the user is prompted to reconnect.
- Events without concrete instants (all-day) or with end <= start are skipped.
- Each remaining event becomes one busy entry keyed by its external id.
  Existing entries are never updated in place, so re-running a sync is
  idempotent.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from freefor.config import get_settings
from freefor.db.models import CalendarConnection
from freefor.db.session import transaction
from freefor.db.types import utcnow
from freefor.errors import ApiErrorCode, ExpiredCredentialError, NotFoundError, UpstreamError
from freefor.logging import get_logger
from freefor.schemas.calendar import (
    CalendarConnectionOut,
    DisconnectOut,
    ProviderCalendarOut,
    SyncSummaryOut,
)
from freefor.services import availability
from freefor.services.calendar_provider import CalendarProvider, require_supported_provider
from freefor.services.crypto import CryptoError, decrypt_token, encrypt_token
from freefor.services.time_range import TimeRange

logger = get_logger(__name__)


# =============================================================================
# Helper Functions
# =============================================================================


def connection_to_out(conn: CalendarConnection) -> CalendarConnectionOut:
    return CalendarConnectionOut(
        provider_name=conn.provider_name,
        connected=conn.connected,
        calendar_ids=list(conn.calendar_ids or []),
        connected_at=conn.connected_at,
        last_synced_at=conn.last_synced_at,
        last_error=conn.last_error,
    )


def get_connection(db: Session, user_id: UUID, provider_name: str) -> CalendarConnection | None:
    return db.scalar(
        select(CalendarConnection).where(
            CalendarConnection.user_id == user_id,
            CalendarConnection.provider_name == provider_name,
        )
    )


def _mark_disconnected(db: Session, conn: CalendarConnection, reason: str) -> None:
    with transaction(db):
        conn.connected = False
        conn.access_token_encrypted = None
        conn.refresh_token_encrypted = None
        conn.last_error = reason
    logger.warning("calendar_connection_expired", provider_name=conn.provider_name)


def _require_access_token(
    db: Session, user_id: UUID, provider_name: str
) -> tuple[CalendarConnection, str]:
    """Load a live connection and open its access token.

    Raises:
        NotFoundError(E_CALENDAR_NOT_CONNECTED): If there is no live connection.
        ExpiredCredentialError: If the stored token can no longer be opened.
    """
    conn = get_connection(db, user_id, provider_name)
    if conn is None or not conn.connected or not conn.access_token_encrypted:
        raise NotFoundError(ApiErrorCode.E_CALENDAR_NOT_CONNECTED, "Calendar is not connected")
    try:
        return conn, decrypt_token(conn.access_token_encrypted)
    except CryptoError as e:
        _mark_disconnected(db, conn, "Stored credential could not be read")
        raise ExpiredCredentialError() from e


# =============================================================================
# Service Functions
# =============================================================================


def connect(
    db: Session,
    user_id: UUID,
    provider_name: str,
    access_token: str,
    refresh_token: str | None = None,
) -> CalendarConnectionOut:
    """Store provider credentials (encrypted) and mark the calendar connected.

    Reconnecting keeps previously selected calendar ids.

    Raises:
        InvalidRequestError(E_UNSUPPORTED_PROVIDER): If the provider is unknown.
    """
    require_supported_provider(provider_name)
    conn = get_connection(db, user_id, provider_name)

    with transaction(db):
        if conn is None:
            conn = CalendarConnection(user_id=user_id, provider_name=provider_name, calendar_ids=[])
            db.add(conn)
        conn.access_token_encrypted = encrypt_token(access_token)
        conn.refresh_token_encrypted = encrypt_token(refresh_token) if refresh_token else None
        conn.connected = True
        conn.connected_at = utcnow()
        conn.last_error = None

    logger.info("calendar_connected", provider_name=provider_name)
    return connection_to_out(conn)


def disconnect(db: Session, user_id: UUID, provider_name: str) -> DisconnectOut:
    """Forget the credentials and delete every entry imported from the provider.

    Raises:
        InvalidRequestError(E_UNSUPPORTED_PROVIDER): If the provider is unknown.
    """
    require_supported_provider(provider_name)
    conn = get_connection(db, user_id, provider_name)
    if conn is not None:
        with transaction(db):
            conn.connected = False
            conn.access_token_encrypted = None
            conn.refresh_token_encrypted = None
            conn.calendar_ids = []
            conn.last_error = None

    deleted = availability.delete_synced_entries(db, user_id, provider_name)
    logger.info("calendar_disconnected", provider_name=provider_name, deleted_entries=deleted)
    return DisconnectOut(provider_name=provider_name, deleted_entries=deleted)


async def list_provider_calendars(
    db: Session, provider: CalendarProvider, user_id: UUID
) -> list[ProviderCalendarOut]:
    """Calendars visible through the user's stored credential.

    Raises:
        NotFoundError(E_CALENDAR_NOT_CONNECTED): If not connected.
        ExpiredCredentialError: If the provider rejects the credential; the
            connection is marked disconnected first.
        UpstreamError: On any other provider failure.
    """
    conn, access_token = _require_access_token(db, user_id, provider.name)
    try:
        calendars = await provider.list_calendars(access_token)
    except ExpiredCredentialError as e:
        _mark_disconnected(db, conn, e.message)
        raise

    return [
        ProviderCalendarOut(id=c.id, name=c.name, primary=c.primary, access_role=c.access_role)
        for c in calendars
    ]


async def sync_calendars(
    db: Session,
    provider: CalendarProvider,
    user_id: UUID,
    calendar_ids: list[str],
    now: datetime | None = None,
) -> SyncSummaryOut:
    """Import busy blocks from the selected calendars.

    Args:
        db: Database session.
        provider: Adapter for the connected provider.
        user_id: The viewer.
        calendar_ids: Calendars to import; stored as the connection's selection.
        now: Start of the look-ahead window (defaults to the current instant).

    Returns:
        Counts of created and skipped events plus per-calendar outcomes.

    Raises:
        NotFoundError(E_CALENDAR_NOT_CONNECTED): If not connected.
        ExpiredCredentialError: If the provider rejects the credential; the
            connection is marked disconnected and the sync stops.
    """
    conn, access_token = _require_access_token(db, user_id, provider.name)
    selected = list(dict.fromkeys(cid for cid in calendar_ids if cid))

    with transaction(db):
        conn.calendar_ids = selected

    start = now or utcnow()
    end = start + timedelta(days=get_settings().calendar_sync_lookahead_days)

    created = 0
    skipped_existing = 0
    skipped_untimed = 0
    calendars_ok: list[str] = []
    calendars_failed: dict[str, str] = {}

    for calendar_id in selected:
        try:
            events = await provider.list_events(access_token, calendar_id, start, end)
        except ExpiredCredentialError as e:
            _mark_disconnected(db, conn, e.message)
            raise
        except UpstreamError as e:
            logger.warning(
                "calendar_sync_failed",
                provider_name=provider.name,
                calendar_id=calendar_id,
                error=e.message,
            )
            calendars_failed[calendar_id] = e.message
            continue

        for event in events:
            if event.start is None or event.end is None or event.end <= event.start:
                skipped_untimed += 1
                continue
            was_created = availability.create_synced_entry(
                db,
                owner_id=user_id,
                provider_name=provider.name,
                external_event_id=event.id,
                label=event.title or "",
                entry_range=TimeRange(event.start, event.end),
            )
            if was_created:
                created += 1
            else:
                skipped_existing += 1
        calendars_ok.append(calendar_id)

    with transaction(db):
        conn.last_synced_at = utcnow()
        conn.last_error = (
            "; ".join(f"{cid}: {msg}" for cid, msg in calendars_failed.items()) or None
        )

    logger.info(
        "calendar_sync_completed",
        provider_name=provider.name,
        created=created,
        skipped_existing=skipped_existing,
        skipped_untimed=skipped_untimed,
        calendars_failed=len(calendars_failed),
    )
    return SyncSummaryOut(
        created=created,
        skipped_existing=skipped_existing,
        skipped_untimed=skipped_untimed,
        calendars_ok=calendars_ok,
        calendars_failed=calendars_failed,
    )
