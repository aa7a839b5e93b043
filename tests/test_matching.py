"""Tests for the ride matching filter."""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import NOW, make_ride
from matching import find_matches, is_same_day, is_time_within_range, routes_match
from models import Gender, Ride

pytestmark = pytest.mark.unit


class TestMatchConditions:
    def test_identical_route_same_day_within_window_matches(self):
        mine = make_ride(at=NOW)
        candidate = make_ride(at=NOW + timedelta(minutes=20), id=1)

        assert find_matches([mine], [candidate], NOW) == [candidate]

    def test_route_comparison_ignores_case(self):
        mine = make_ride(from_="campus", to="KURIL")
        candidate = make_ride(from_="Campus", to="Kuril", id=1)

        assert find_matches([mine], [candidate], NOW) == [candidate]

    def test_reverse_direction_does_not_match(self):
        mine = make_ride(from_="Campus", to="Kuril")
        candidate = make_ride(from_="Kuril", to="Campus", id=1)

        assert find_matches([mine], [candidate], NOW) == []

    @pytest.mark.parametrize(
        "change",
        [
            {"from_": "Future Park"},
            {"to": "Future Park"},
            {"at": NOW + timedelta(minutes=45)},
            {"at": NOW - timedelta(days=1)},
        ],
    )
    def test_flipping_any_condition_excludes_candidate(self, change):
        mine = make_ride()
        candidate = make_ride(**change)

        assert find_matches([mine], [candidate], NOW) == []

    def test_exactly_thirty_minutes_is_inclusive(self):
        mine = make_ride(at=NOW)
        candidate = make_ride(at=NOW + timedelta(minutes=30))

        assert find_matches([mine], [candidate], NOW) == [candidate]

    def test_thirty_minutes_and_one_second_is_excluded(self):
        mine = make_ride(at=NOW)
        candidate = make_ride(at=NOW + timedelta(minutes=30, seconds=1))

        assert find_matches([mine], [candidate], NOW) == []

    def test_window_across_midnight_is_not_same_day(self):
        late = datetime(2025, 3, 10, 23, 50, tzinfo=timezone.utc)
        mine = make_ride(at=late)
        candidate = make_ride(at=late + timedelta(minutes=20))

        assert find_matches([mine], [candidate], NOW) == []

    def test_same_day_uses_configured_zone(self):
        # 23:50 and 00:10 UTC are both on 11 March in Dhaka (UTC+6)
        late = datetime(2025, 3, 10, 23, 50, tzinfo=timezone.utc)
        mine = make_ride(at=late)
        candidate = make_ride(at=late + timedelta(minutes=20))

        result = find_matches([mine], [candidate], NOW, tz=ZoneInfo("Asia/Dhaka"))

        assert result == [candidate]


class TestOrderingAndShape:
    def test_sorted_by_absolute_distance_from_now(self):
        mine = make_ride(at=NOW + timedelta(minutes=10))
        plus_10 = make_ride(at=NOW + timedelta(minutes=10), id="+10")
        plus_40 = make_ride(at=NOW + timedelta(minutes=40), id="+40")
        minus_5 = make_ride(at=NOW - timedelta(minutes=5), id="-5")

        result = find_matches([mine], [plus_10, plus_40, minus_5], NOW)

        assert [r["id"] for r in result] == ["-5", "+10", "+40"]

    def test_ties_keep_input_order(self):
        mine = make_ride(at=NOW)
        before = make_ride(at=NOW - timedelta(minutes=10), id="a")
        after = make_ride(at=NOW + timedelta(minutes=10), id="b")

        assert [r["id"] for r in find_matches([mine], [before, after], NOW)] == ["a", "b"]
        assert [r["id"] for r in find_matches([mine], [after, before], NOW)] == ["b", "a"]

    def test_candidate_matching_several_own_rides_appears_once(self):
        own = [make_ride(at=NOW), make_ride(at=NOW + timedelta(minutes=5))]
        candidate = make_ride(at=NOW + timedelta(minutes=2), id=1)

        assert find_matches(own, [candidate], NOW) == [candidate]

    def test_empty_inputs_give_empty_result(self):
        assert find_matches([], [make_ride()], NOW) == []
        assert find_matches([make_ride()], [], NOW) == []
        assert find_matches(None, None, NOW) == []

    def test_repeated_calls_are_identical_and_do_not_mutate(self):
        own = [make_ride(at=NOW)]
        pool = [make_ride(at=NOW + timedelta(minutes=m), id=m) for m in (25, -10, 5)]
        snapshot = [dict(r) for r in pool]

        first = find_matches(own, pool, NOW)
        second = find_matches(own, pool, NOW)

        assert first == second
        assert pool == snapshot


class TestMalformedInput:
    @pytest.mark.parametrize(
        "candidate",
        [
            {"to": "Kuril", "time": NOW.isoformat()},
            {"from": "Campus", "time": NOW.isoformat()},
            {"from": "Campus", "to": "Kuril"},
            {"from": "Campus", "to": "Kuril", "time": "not a date"},
            {"from": None, "to": "Kuril", "time": NOW.isoformat()},
            {"from": "Campus", "to": "Kuril", "time": 12345},
        ],
    )
    def test_bad_candidate_is_non_matching(self, candidate):
        good = make_ride(at=NOW, id="ok")

        assert find_matches([make_ride()], [candidate, good], NOW) == [good]

    def test_own_ride_without_time_is_ignored(self):
        assert find_matches([{"from": "Campus", "to": "Kuril"}], [make_ride()], NOW) == []

    def test_z_suffix_and_naive_timestamps_are_accepted(self):
        mine = make_ride(at="2025-03-10T08:00:00Z")
        candidate = make_ride(at="2025-03-10T08:15:00")

        assert find_matches([mine], [candidate], NOW) == [candidate]

    def test_trimmed_fractional_seconds_are_accepted(self):
        mine = make_ride(at="2025-03-10T08:00:00.5+00:00")
        candidate = make_ride(at="2025-03-10T08:10:00.12+00:00")

        assert find_matches([mine], [candidate], NOW) == [candidate]


class TestCohortRevalidation:
    def test_other_gender_dropped_when_cohort_given(self):
        same = make_ride(id=1, gender="Female")
        other = make_ride(id=2, gender="Male")

        result = find_matches([make_ride()], [same, other], NOW, gender=Gender.FEMALE)

        assert result == [same]

    def test_own_rides_dropped_when_user_given(self):
        mine = make_ride(id=1, user_id="me")
        theirs = make_ride(id=2, user_id="them")

        assert find_matches([make_ride()], [mine, theirs], NOW, exclude_user_id="me") == [theirs]

    def test_accepts_ride_models(self):
        candidate = Ride.model_validate(make_ride(id=7, gender="Male"))

        assert find_matches([make_ride()], [candidate], NOW, gender="male") == [candidate]


class TestHelpers:
    def test_routes_match_handles_missing_ride(self):
        assert routes_match(None, make_ride()) is False

    def test_time_window_is_symmetric(self):
        assert is_time_within_range(NOW, NOW - timedelta(minutes=30))
        assert is_time_within_range(NOW - timedelta(minutes=30), NOW)

    def test_same_day_compares_calendar_date(self):
        assert is_same_day(NOW, NOW.replace(hour=23, minute=59), timezone.utc)
        assert not is_same_day(NOW, NOW + timedelta(days=1), timezone.utc)
