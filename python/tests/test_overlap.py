"""Tests for overlap search.

Covers the pure sweep helpers and the database-backed find_overlap.
2026-01-05 is a Monday.
"""

from uuid import uuid4

import pytest

from freefor.errors import ApiErrorCode, InvalidRequestError, NotFoundError, ValidationError
from freefor.services.availability import query_window
from freefor.services.overlap import find_overlap, intersect_free_time, merge_ranges
from freefor.services.time_range import TimeRange
from tests.factories import create_entry, create_user
from tests.helpers import utc


def r(start_hour: int, end_hour: int, day: int = 5) -> TimeRange:
    return TimeRange(utc(2026, 1, day, start_hour), utc(2026, 1, day, end_hour))


class TestMergeRanges:
    def test_merges_overlapping_and_touching(self):
        merged = merge_ranges([r(20, 22), r(18, 19), r(19, 20), r(21, 23)])
        assert merged == [r(18, 23)]

    def test_keeps_disjoint_ranges_sorted(self):
        assert merge_ranges([r(20, 21), r(10, 11)]) == [r(10, 11), r(20, 21)]


class TestIntersectFreeTime:
    def test_common_window_of_two_users(self):
        result = intersect_free_time([[r(18, 22)], [r(20, 23)]])
        assert result == [r(20, 22)]

    def test_touching_ranges_produce_nothing(self):
        assert intersect_free_time([[r(18, 20)], [r(20, 22)]]) == []

    def test_self_overlap_does_not_inflate_coverage(self):
        # User one double-books 18-20; user two has nothing
        assert intersect_free_time([[r(18, 20), r(19, 21)], []]) == []

    def test_clipped_to_window(self):
        window = TimeRange(utc(2026, 1, 5, 19), utc(2026, 1, 5, 21))
        assert intersect_free_time([[r(18, 22)], [r(17, 23)]], window) == [r(19, 21)]

    def test_three_users(self):
        result = intersect_free_time([[r(10, 12), r(18, 23)], [r(11, 19)], [r(9, 22)]])
        assert result == [r(11, 12), r(18, 19)]

    def test_no_users(self):
        assert intersect_free_time([]) == []


class TestFindOverlap:
    def test_monday_scenario_returns_only_available_entries(self, db_session):
        """Busy entries are not overlap candidates; the window read still returns them."""
        a = create_user(db_session, username="alpha")
        available = create_entry(db_session, a, utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        busy = create_entry(
            db_session, a, utc(2026, 1, 5, 19), utc(2026, 1, 5, 19, 30), kind="busy"
        )
        monday = utc(2026, 1, 5)
        tuesday = utc(2026, 1, 6)

        window = query_window(db_session, a.id, monday, tuesday)
        assert [e.id for e in window] == [available.id, busy.id]

        result = find_overlap(db_session, [a.id], monday, tuesday)
        assert [e.id for e in result.entries_by_user[a.id]] == [available.id]
        assert [(w.start, w.end) for w in result.common_windows] == [
            (utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        ]

    def test_two_users_common_window(self, db_session):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")
        create_entry(db_session, a, utc(2026, 1, 5, 18), utc(2026, 1, 5, 22))
        create_entry(db_session, b, utc(2026, 1, 5, 20), utc(2026, 1, 5, 23))

        result = find_overlap(db_session, [a.id, b.id], utc(2026, 1, 5), utc(2026, 1, 6))

        assert [u.id for u in result.users] == [a.id, b.id]
        assert [(w.start, w.end) for w in result.common_windows] == [
            (utc(2026, 1, 5, 20), utc(2026, 1, 5, 22))
        ]

    def test_user_without_entries_maps_to_empty_list(self, db_session):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")
        create_entry(db_session, a, utc(2026, 1, 5, 18), utc(2026, 1, 5, 22))

        result = find_overlap(db_session, [a.id, b.id], utc(2026, 1, 5), utc(2026, 1, 6))

        assert result.entries_by_user[b.id] == []
        assert result.common_windows == []

    def test_hidden_entries_excluded(self, db_session):
        a = create_user(db_session, username="alpha")
        create_entry(db_session, a, utc(2026, 1, 5, 18), utc(2026, 1, 5, 22), visible=False)

        result = find_overlap(db_session, [a.id], utc(2026, 1, 5), utc(2026, 1, 6))

        assert result.entries_by_user[a.id] == []

    def test_duplicate_ids_collapse(self, db_session):
        a = create_user(db_session, username="alpha")

        result = find_overlap(db_session, [a.id, a.id], utc(2026, 1, 5), utc(2026, 1, 6))

        assert len(result.users) == 1

    def test_private_user_is_not_found(self, db_session):
        a = create_user(db_session, username="alpha")
        hidden = create_user(db_session, username="hidden", is_public=False)

        with pytest.raises(NotFoundError) as exc_info:
            find_overlap(db_session, [a.id, hidden.id], utc(2026, 1, 5), utc(2026, 1, 6))
        assert exc_info.value.code == ApiErrorCode.E_USER_NOT_FOUND

    def test_unknown_user_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            find_overlap(db_session, [uuid4()], utc(2026, 1, 5), utc(2026, 1, 6))

    def test_too_many_users(self, db_session):
        with pytest.raises(InvalidRequestError) as exc_info:
            find_overlap(db_session, [uuid4() for _ in range(11)], utc(2026, 1, 5), utc(2026, 1, 6))
        assert exc_info.value.code == ApiErrorCode.E_TOO_MANY_USERS

    def test_inverted_window(self, db_session):
        a = create_user(db_session, username="alpha")
        with pytest.raises(ValidationError) as exc_info:
            find_overlap(db_session, [a.id], utc(2026, 1, 6), utc(2026, 1, 5))
        assert exc_info.value.code == ApiErrorCode.E_INVALID_RANGE
