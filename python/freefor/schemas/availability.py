"""Availability and overlap Pydantic schemas.

Contains request and response models for availability endpoints. Every
instant in a request body must carry a UTC offset (AwareDatetime).
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from freefor.schemas.profile import PublicProfileOut

EntryKindValue = Literal["available", "busy", "override"]
EntryOriginValue = Literal["manual", "externally_synced"]
FrequencyValue = Literal["daily", "weekly", "monthly"]

__all__ = [
    "EntryKindValue",
    "EntryOriginValue",
    "FrequencyValue",
    "RecurrenceIn",
    "RecurrenceOut",
    "CreateAvailabilityRequest",
    "UpdateAvailabilityRequest",
    "AvailabilityEntryOut",
    "OverlapRequest",
    "TimeWindowOut",
    "OverlapOut",
]

# =============================================================================
# Request Schemas
# =============================================================================


class RecurrenceIn(BaseModel):
    """Recurrence payload for a recurring entry."""

    frequency: FrequencyValue
    interval: int = Field(default=1, ge=1, le=365)
    days_of_week: list[int] = Field(
        default_factory=list, description="0 = Sunday .. 6 = Saturday (weekly only)"
    )
    until: AwareDatetime | None = None


class CreateAvailabilityRequest(BaseModel):
    """Request body for creating an availability entry."""

    kind: EntryKindValue = "available"
    label: str | None = Field(default=None, max_length=100)
    start: AwareDatetime
    end: AwareDatetime
    is_recurring: bool = False
    recurrence: RecurrenceIn | None = None
    visible: bool = True


class UpdateAvailabilityRequest(BaseModel):
    """Request body for patching an availability entry. Omitted fields are kept."""

    kind: EntryKindValue | None = None
    label: str | None = Field(default=None, max_length=100)
    start: AwareDatetime | None = None
    end: AwareDatetime | None = None
    is_recurring: bool | None = None
    recurrence: RecurrenceIn | None = None
    visible: bool | None = None


class OverlapRequest(BaseModel):
    """Request body for an overlap query."""

    user_ids: list[UUID] = Field(..., min_length=1)
    start: AwareDatetime
    end: AwareDatetime


# =============================================================================
# Response Schemas
# =============================================================================


class RecurrenceOut(BaseModel):
    frequency: FrequencyValue
    interval: int
    days_of_week: list[int]
    until: datetime | None


class AvailabilityEntryOut(BaseModel):
    """Response schema for an availability entry or one occurrence of it.

    For expanded recurring occurrences ``id`` is the template's id and
    ``occurrence_index`` is set; stored rows have ``occurrence_index=None``.
    """

    id: UUID
    owner_user_id: UUID
    kind: EntryKindValue
    label: str
    start: datetime
    end: datetime
    is_recurring: bool
    recurrence: RecurrenceOut | None = None
    origin: EntryOriginValue
    provider_name: str | None = None
    external_event_id: str | None = None
    visible: bool
    occurrence_index: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeWindowOut(BaseModel):
    start: datetime
    end: datetime


class OverlapOut(BaseModel):
    """Per-user available candidates plus the windows where everyone is free."""

    window: TimeWindowOut
    users: list[PublicProfileOut]
    entries_by_user: dict[UUID, list[AvailabilityEntryOut]]
    common_windows: list[TimeWindowOut] = Field(default_factory=list)
