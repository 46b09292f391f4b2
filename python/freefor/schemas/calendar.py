"""External calendar Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ConnectCalendarRequest(BaseModel):
    """Tokens obtained by the client from the provider's OAuth flow."""

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None


class SyncCalendarsRequest(BaseModel):
    calendar_ids: list[str] = Field(..., min_length=1, max_length=50)


class CalendarConnectionOut(BaseModel):
    provider_name: str
    connected: bool
    calendar_ids: list[str]
    connected_at: datetime | None
    last_synced_at: datetime | None
    last_error: str | None


class ProviderCalendarOut(BaseModel):
    id: str
    name: str
    primary: bool = False
    access_role: str | None = None


class SyncSummaryOut(BaseModel):
    created: int
    skipped_existing: int
    skipped_untimed: int
    calendars_ok: list[str]
    calendars_failed: dict[str, str]


class DisconnectOut(BaseModel):
    provider_name: str
    deleted_entries: int
