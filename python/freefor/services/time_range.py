"""Half-open time ranges over timezone-aware instants.

A TimeRange is ``[start, end)``: start inclusive, end exclusive. Two ranges
that only share a boundary point do not overlap, and every range must have
``start < end``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from freefor.errors import ApiErrorCode, ValidationError


def ensure_aware(value: datetime, field: str = "instant") -> datetime:
    """Reject floating local time.

    Raises:
        ValidationError(E_INVALID_INSTANT): If ``value`` carries no UTC offset.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(
            ApiErrorCode.E_INVALID_INSTANT, f"{field} must include a UTC offset"
        )
    return value


@dataclass(frozen=True, slots=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        ensure_aware(self.start, "start")
        ensure_aware(self.end, "end")
        if self.start >= self.end:
            raise ValidationError(ApiErrorCode.E_INVALID_RANGE, "start must be before end")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        return overlaps(self, other)

    def contains(self, point: datetime) -> bool:
        return self.start <= point < self.end

    def intersection(self, other: "TimeRange") -> "TimeRange | None":
        """Common sub-range, or None when the ranges are disjoint."""
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start >= end:
            return None
        return TimeRange(start, end)

    def shifted(self, delta: timedelta) -> "TimeRange":
        return TimeRange(self.start + delta, self.end + delta)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test: ``a.start < b.end and a.end > b.start``."""
    return a.start < b.end and a.end > b.start
