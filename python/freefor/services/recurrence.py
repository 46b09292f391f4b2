"""Recurrence expansion for availability templates.

A recurring availability entry is stored once, as a template whose range is
the first occurrence. ``expand`` turns that template into the concrete
occurrences that fall inside a query window.

Rules:
- daily: every ``interval`` days from the template start.
- weekly: weeks are counted from the Sunday-started week holding the template
  start; every ``interval``-th week yields one occurrence per selected weekday
  (0 = Sunday .. 6 = Saturday), defaulting to the template's own weekday.
  The template is always the first occurrence, even on an unselected day.
- monthly: every ``interval`` months on the template's day of month, clamped
  to the last day of shorter months. The anchor day never drifts.
- ``until`` is inclusive of an occurrence starting exactly at it.
- A template may not outlast the gap to its next occurrence, so occurrences
  never overlap one another.

All arithmetic is on UTC instants, so occurrences keep the template's UTC
time of day.
"""

import calendar
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from freefor.db.models import RecurrenceFrequency
from freefor.errors import ApiErrorCode, ValidationError
from freefor.services.time_range import TimeRange

DEFAULT_MAX_OCCURRENCES = 1000

_FREQUENCIES = {f.value for f in RecurrenceFrequency}


def _invalid(message: str) -> ValidationError:
    return ValidationError(ApiErrorCode.E_INVALID_RECURRENCE, message)


def _sunday_weekday(dt: datetime) -> int:
    """Weekday with 0 = Sunday (Python's weekday() has 0 = Monday)."""
    return (dt.weekday() + 1) % 7


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    interval: int = 1
    days_of_week: frozenset[int] = field(default_factory=frozenset)
    until: datetime | None = None

    def validate(self) -> "RecurrenceRule":
        """Check the rule and return it.

        Raises:
            ValidationError(E_INVALID_RECURRENCE): On an unknown frequency, an
                interval below 1, weekdays outside 0..6, weekdays on a
                non-weekly rule, or a naive ``until``.
        """
        if self.frequency not in _FREQUENCIES:
            raise _invalid(f"Unknown recurrence frequency: {self.frequency!r}")
        if not isinstance(self.interval, int) or self.interval < 1:
            raise _invalid("Recurrence interval must be a positive integer")
        if any(day not in range(7) for day in self.days_of_week):
            raise _invalid("days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
        if self.days_of_week and self.frequency != RecurrenceFrequency.weekly.value:
            raise _invalid("days_of_week is only allowed for weekly recurrence")
        if self.until is not None and self.until.tzinfo is None:
            raise _invalid("Recurrence until must include a UTC offset")
        return self

    def shortest_gap(self, first: datetime) -> timedelta:
        """Smallest distance between two consecutive occurrence starts.

        Monthly rules use 28 days per interval, the shortest clamped month.
        """
        if self.frequency == RecurrenceFrequency.daily.value:
            return timedelta(days=self.interval)
        if self.frequency == RecurrenceFrequency.monthly.value:
            return timedelta(days=28 * self.interval)
        days = sorted(self.days_of_week | {_sunday_weekday(first.astimezone(UTC))})
        gaps = [later - earlier for earlier, later in zip(days, days[1:])]
        gaps.append(7 * self.interval - (days[-1] - days[0]))
        return timedelta(days=min(gaps))

    def check_fits(self, template: TimeRange) -> None:
        """Reject templates long enough for one occurrence to overlap the next.

        Raises:
            ValidationError(E_INVALID_RECURRENCE): If the template outlasts
                ``shortest_gap``.
        """
        if template.duration > self.shortest_gap(template.start):
            raise _invalid("Recurring entry must end before its next occurrence starts")


def expand(
    template: TimeRange,
    rule: RecurrenceRule,
    window: TimeRange,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[TimeRange]:
    """Concrete occurrences of ``template`` that overlap ``window``.

    Occurrences keep the template's duration and are returned in start order.
    """
    rule.validate()
    duration = template.duration
    until = rule.until.astimezone(UTC) if rule.until is not None else None
    first = template.start.astimezone(UTC)

    # Occurrences starting before this instant cannot reach the window
    not_before = window.start.astimezone(UTC) - duration

    result: list[TimeRange] = []
    for start in _occurrence_starts(first, rule, not_before):
        if start >= window.end:
            break
        if until is not None and start > until:
            break
        occurrence = TimeRange(start, start + duration)
        if occurrence.overlaps(window):
            result.append(occurrence)
            if len(result) >= max_occurrences:
                break
    return result


def _occurrence_starts(
    first: datetime, rule: RecurrenceRule, not_before: datetime
) -> Iterator[datetime]:
    if rule.frequency == RecurrenceFrequency.daily.value:
        return _daily(first, rule.interval, not_before)
    if rule.frequency == RecurrenceFrequency.weekly.value:
        return _weekly(first, rule.interval, rule.days_of_week, not_before)
    return _monthly(first, rule.interval)


def _periods_to_skip(first: datetime, not_before: datetime, step: timedelta) -> int:
    if not_before <= first:
        return 0
    return (not_before - first) // step


def _daily(first: datetime, interval: int, not_before: datetime) -> Iterator[datetime]:
    step = timedelta(days=interval)
    current = first + step * _periods_to_skip(first, not_before, step)
    while True:
        yield current
        current += step


def _weekly(
    first: datetime, interval: int, days_of_week: frozenset[int], not_before: datetime
) -> Iterator[datetime]:
    days = sorted(days_of_week) if days_of_week else [_sunday_weekday(first)]
    week_start = first - timedelta(days=_sunday_weekday(first))
    step = timedelta(weeks=interval)
    # Keep one extra period so the week containing not_before is not skipped
    skip = max(_periods_to_skip(week_start, not_before, step) - 1, 0)
    week_start += step * skip
    # The template itself is the first occurrence even off the selected days
    yield first
    while True:
        for day in days:
            start = week_start + timedelta(days=day)
            if start > first:
                yield start
        week_start += step


def _monthly(first: datetime, interval: int) -> Iterator[datetime]:
    anchor_day = first.day
    months = 0
    while True:
        total = first.month - 1 + months
        year = first.year + total // 12
        month = total % 12 + 1
        if year > 9999:
            return
        day = min(anchor_day, calendar.monthrange(year, month)[1])
        yield first.replace(year=year, month=month, day=day)
        months += interval
