"""Tests for half-open time ranges."""

from datetime import datetime, timedelta, timezone

import pytest

from freefor.errors import ApiErrorCode, ValidationError
from freefor.services.time_range import TimeRange, ensure_aware, overlaps
from tests.helpers import utc


class TestConstruction:
    def test_start_must_precede_end(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeRange(utc(2026, 1, 5, 20), utc(2026, 1, 5, 18))
        assert exc_info.value.code == ApiErrorCode.E_INVALID_RANGE

    def test_zero_length_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 18))
        assert exc_info.value.code == ApiErrorCode.E_INVALID_RANGE

    def test_naive_instant_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            TimeRange(datetime(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        assert exc_info.value.code == ApiErrorCode.E_INVALID_INSTANT

    def test_ensure_aware_accepts_offsets(self):
        value = datetime(2026, 1, 5, 18, tzinfo=timezone(timedelta(hours=-5)))
        assert ensure_aware(value) is value


class TestOverlaps:
    def test_overlap_is_symmetric(self):
        a = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        b = TimeRange(utc(2026, 1, 5, 19), utc(2026, 1, 5, 21))
        assert overlaps(a, b)
        assert overlaps(b, a)

    def test_touching_ranges_do_not_overlap(self):
        a = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        b = TimeRange(utc(2026, 1, 5, 20), utc(2026, 1, 5, 22))
        assert not a.overlaps(b)
        assert not b.overlaps(a)

    def test_contained_range_overlaps(self):
        outer = TimeRange(utc(2026, 1, 5, 0), utc(2026, 1, 6, 0))
        inner = TimeRange(utc(2026, 1, 5, 19), utc(2026, 1, 5, 19, 30))
        assert outer.overlaps(inner)

    def test_same_instant_in_different_offsets(self):
        """Instants are compared, not wall-clock values."""
        plus_two = timezone(timedelta(hours=2))
        a = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        b = TimeRange(
            datetime(2026, 1, 5, 22, tzinfo=plus_two), datetime(2026, 1, 5, 23, tzinfo=plus_two)
        )
        assert not a.overlaps(b)


class TestHelpers:
    def test_contains_is_half_open(self):
        r = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        assert r.contains(utc(2026, 1, 5, 18))
        assert not r.contains(utc(2026, 1, 5, 20))

    def test_intersection(self):
        a = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        b = TimeRange(utc(2026, 1, 5, 19), utc(2026, 1, 5, 21))
        assert a.intersection(b) == TimeRange(utc(2026, 1, 5, 19), utc(2026, 1, 5, 20))

    def test_intersection_of_touching_ranges_is_none(self):
        a = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        b = TimeRange(utc(2026, 1, 5, 20), utc(2026, 1, 5, 21))
        assert a.intersection(b) is None

    def test_shifted_keeps_duration(self):
        r = TimeRange(utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        moved = r.shifted(timedelta(days=1))
        assert moved.start == utc(2026, 1, 6, 18)
        assert moved.duration == timedelta(hours=2)
