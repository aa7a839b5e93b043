"""User-facing flows: the ride feed, posting rides and profile setup.

Each flow takes the Supabase client, and where it needs them, a RideCache
and a Clock, so pages stay free of backend and cache details.
"""
from dataclasses import dataclass, field
from datetime import date, time, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import ValidationError

import db
from cache import RideCache
from clock import Clock, SystemClock, to_millis
from config import LOCATIONS, MAX_AVATAR_BYTES
from exceptions import (
    BackendError,
    BackendUnavailableError,
    InvalidInputError,
    NotAuthorizedError,
    ProfileIncompleteError,
)
from log import get_logger
from matching import find_matches
from models import AvatarUpload, Gender, Profile, Ride
from utils import combine_departure

logger = get_logger(__name__)

PROFILE_REQUIRED = "Please complete your profile setup first."
OFFLINE_EMPTY = (
    "You're offline. No cached ride matches available. Connect to the internet to find new matches."
)


class FeedSource(str, Enum):
    CACHE = "cache"
    NETWORK = "network"
    STALE = "stale"
    EMPTY = "empty"


@dataclass
class FeedResult:
    rides: List[Ride] = field(default_factory=list)
    source: FeedSource = FeedSource.EMPTY
    message: Optional[str] = None
    profile: Optional[Profile] = None


def _require_profile(row) -> Profile:
    if not row:
        raise ProfileIncompleteError(PROFILE_REQUIRED)
    try:
        profile = Profile.model_validate(row)
    except ValidationError as e:
        logger.warning(f"Unreadable profile {row.get('user_id')}: {e}")
        raise ProfileIncompleteError(PROFILE_REQUIRED) from e
    if profile.gender is None:
        raise ProfileIncompleteError(PROFILE_REQUIRED)
    return profile


def _to_rides(rows) -> List[Ride]:
    rides = []
    for row in rows:
        try:
            rides.append(Ride.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping malformed ride {row.get('id') if isinstance(row, dict) else row}: {e}")
    return rides


# ===========================
# RIDE FEED
# ===========================
def fetch_matches(client, user_id: str, clock: Clock) -> Tuple[List[Ride], Profile]:
    """Fetch profile, own rides and the gender cohort's rides, then match."""
    profile = _require_profile(db.get_profile(client, user_id))
    my_rides = db.get_my_rides(client, user_id)
    candidates = db.get_candidate_rides(client, profile.gender.value, user_id)
    matched = find_matches(my_rides, candidates, clock.now(), gender=profile.gender, exclude_user_id=user_id)
    logger.info(f"{len(matched)} of {len(candidates)} rides match for user {user_id}")
    return _to_rides(matched), profile


def _cached_fallback(cache: RideCache, error: BackendError) -> FeedResult:
    snapshot = cache.read()
    if snapshot.rides is not None:
        return FeedResult(snapshot.rides, FeedSource.STALE, f"Showing cached matches. {error}", snapshot.profile)
    if isinstance(error, BackendUnavailableError):
        return FeedResult(source=FeedSource.EMPTY, message=OFFLINE_EMPTY)
    return FeedResult(source=FeedSource.EMPTY, message=str(error))


def load_ride_feed(client, cache: RideCache, user_id: str, clock: Optional[Clock] = None) -> FeedResult:
    """Serve a fresh cache snapshot, else fetch, cache and serve; stale cache on failure."""
    clock = clock or cache.clock
    if cache.is_valid():
        snapshot = cache.read()
        if snapshot.is_complete:
            return FeedResult(snapshot.rides, FeedSource.CACHE, profile=snapshot.profile)

    try:
        rides, profile = fetch_matches(client, user_id, clock)
    except BackendError as e:
        logger.warning(f"Ride feed fetch failed, trying cache: {e}")
        return _cached_fallback(cache, e)

    cache.write(rides, profile)
    return FeedResult(rides, FeedSource.NETWORK, profile=profile)


def refresh_ride_feed(client, cache: RideCache, user_id: str, online: bool, clock: Optional[Clock] = None) -> FeedResult:
    """Manual refresh: refetch when online, otherwise show whatever is cached."""
    if online:
        cache.clear()
        return load_ride_feed(client, cache, user_id, clock)
    snapshot = cache.read()
    if snapshot.rides is not None:
        return FeedResult(snapshot.rides, FeedSource.STALE, "Using cached data", snapshot.profile)
    return FeedResult(source=FeedSource.EMPTY, message=OFFLINE_EMPTY)


# ===========================
# POSTING
# ===========================
def post_ride(
    client,
    user_id: str,
    from_: str,
    to: str,
    day: Optional[date],
    at: Optional[time],
    clock: Optional[Clock] = None,
    cache: Optional[RideCache] = None,
    tz=None,
) -> Optional[dict]:
    clock = clock or SystemClock()
    if not from_ or not to or not day or not at:
        raise InvalidInputError("All fields required")
    if from_ not in LOCATIONS or to not in LOCATIONS:
        raise InvalidInputError(f"Locations must be one of: {', '.join(LOCATIONS)}")

    departure = combine_departure(day, at, tz)
    if departure < clock.now():
        raise InvalidInputError("Please select a future date and time")

    profile = _require_profile(db.get_profile(client, user_id))
    if profile.is_blocked:
        raise NotAuthorizedError("Your account has been blocked. Contact an admin.")

    ride = db.insert_ride(
        client,
        {
            "user_id": user_id,
            "from": from_,
            "to": to,
            "time": departure.astimezone(timezone.utc).isoformat(),
            "gender": profile.gender.value,
        },
    )
    if cache is not None:
        cache.clear()
    logger.info(f"User {user_id} posted ride {from_} -> {to} at {departure.isoformat()}")
    return ride


def list_my_posts(client, user_id: str) -> List[Ride]:
    return _to_rides(db.list_user_rides(client, user_id))


def delete_my_post(client, user_id: str, ride_id, cache: Optional[RideCache] = None) -> None:
    db.delete_ride(client, ride_id, user_id=user_id)
    if cache is not None:
        cache.clear()


# ===========================
# PROFILE
# ===========================
def validate_avatar(avatar: AvatarUpload) -> None:
    if avatar.size > MAX_AVATAR_BYTES:
        raise InvalidInputError(f"File size too large. Maximum size is {MAX_AVATAR_BYTES // (1024 * 1024)}MB")
    if not avatar.content_type.startswith("image/"):
        raise InvalidInputError("Only image files are allowed")


def save_profile(
    client,
    user_id: str,
    name: str,
    gender: str,
    whatsapp: str,
    avatar: Optional[AvatarUpload] = None,
    clock: Optional[Clock] = None,
    cache: Optional[RideCache] = None,
) -> Profile:
    clock = clock or SystemClock()
    if not name or not gender or not whatsapp:
        raise InvalidInputError("All fields required")
    try:
        gender = Gender(gender)
    except ValueError:
        raise InvalidInputError(f"Unknown gender {gender!r}") from None

    payload = {
        "user_id": user_id,
        "name": name.strip(),
        "gender": gender.value,
        "whatsapp": whatsapp.strip(),
        "updated_at": clock.now().isoformat(),
    }
    if avatar is not None:
        validate_avatar(avatar)
        file_name = f"{user_id}-{to_millis(clock.now())}.{avatar.extension}"
        payload["avatar_url"] = db.upload_avatar(client, file_name, avatar.data, avatar.content_type)

    row = db.upsert_profile(client, payload)
    if cache is not None:
        cache.clear()
    return Profile.model_validate(row or payload)
