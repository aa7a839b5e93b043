from collections.abc import Mapping
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional

from config import MATCH_WINDOW
from utils import get_zone, parse_timestamp


def _field(ride, name):
    """Null-safe access for backend rows (dicts) and Ride models alike."""
    if ride is None:
        return None
    if isinstance(ride, Mapping):
        return ride.get(name)
    return getattr(ride, "from_" if name == "from" else name, None)


def _text(value) -> Optional[str]:
    if isinstance(value, Enum):
        value = value.value
    return value.lower() if isinstance(value, str) else None


def routes_match(mine, candidate) -> bool:
    """Same origin and same destination, ignoring case. A->B never matches B->A."""
    m_from, m_to = _text(_field(mine, "from")), _text(_field(mine, "to"))
    if m_from is None or m_to is None:
        return False
    return m_from == _text(_field(candidate, "from")) and m_to == _text(_field(candidate, "to"))


def is_same_day(a: datetime, b: datetime, tz=None) -> bool:
    tz = tz or get_zone()
    return a.astimezone(tz).date() == b.astimezone(tz).date()


def is_time_within_range(a: datetime, b: datetime, window: timedelta = MATCH_WINDOW) -> bool:
    return abs(a - b) <= window


def find_matches(
    my_rides: Iterable,
    candidate_rides: Iterable,
    now: datetime,
    *,
    gender=None,
    exclude_user_id: Optional[str] = None,
    window: timedelta = MATCH_WINDOW,
    tz=None,
) -> List:
    """Candidates matching at least one of ``my_rides``, closest to ``now`` first.

    The candidate pool is expected to be pre-filtered to the user's gender
    cohort and to exclude the user's own rides; pass ``gender`` and
    ``exclude_user_id`` to enforce that here as well. Rides with a missing
    or unparsable route or time never match.
    """
    tz = tz or get_zone()
    now = parse_timestamp(now, tz)

    mine = []
    for ride in my_rides or []:
        ride_time = parse_timestamp(_field(ride, "time"), tz)
        if ride_time is not None:
            mine.append((ride, ride_time))
    if not mine:
        return []

    cohort = _text(gender)
    matches = []
    for candidate in candidate_rides or []:
        if cohort is not None and _text(_field(candidate, "gender")) != cohort:
            continue
        if exclude_user_id is not None and _field(candidate, "user_id") == exclude_user_id:
            continue
        c_time = parse_timestamp(_field(candidate, "time"), tz)
        if c_time is None:
            continue
        if any(
            routes_match(ride, candidate) and is_same_day(ride_time, c_time, tz) and is_time_within_range(ride_time, c_time, window)
            for ride, ride_time in mine
        ):
            matches.append((candidate, c_time))

    # sorted() is stable, ties keep input order
    if now is not None:
        matches = sorted(matches, key=lambda item: abs(item[1] - now))
    return [candidate for candidate, _ in matches]
