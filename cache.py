"""TTL snapshot of the ride feed and the user's profile.

The snapshot lives in three keys of a durable KeyValueStore. Reads never
raise: an empty, corrupt or unparsable store is a cache miss. Writes are
best-effort and per key, so concurrent refreshes are last-writer-wins.
"""
import json
from datetime import timedelta
from typing import Iterable, Optional

from pydantic import ValidationError

from clock import Clock, SystemClock, to_millis
from config import CACHE_TTL
from exceptions import StorageError
from log import get_logger
from models import CacheSnapshot, Profile, Ride
from storage import KeyValueStore

logger = get_logger(__name__)

RIDES_KEY = "cached_rides"
PROFILE_KEY = "cached_profile"
LAST_FETCH_KEY = "last_fetch_time"
CACHE_KEYS = (RIDES_KEY, PROFILE_KEY, LAST_FETCH_KEY)


def _dump_ride(ride) -> dict:
    return ride.to_row() if isinstance(ride, Ride) else Ride.model_validate(ride).to_row()


def _dump_profile(profile) -> Optional[dict]:
    if profile is None:
        return None
    if not isinstance(profile, Profile):
        profile = Profile.model_validate(profile)
    return profile.model_dump(mode="json")


class RideCache:
    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None, ttl: timedelta = CACHE_TTL):
        self.store = store
        self.clock = clock or SystemClock()
        self.ttl = ttl

    def last_fetch_millis(self) -> Optional[int]:
        try:
            raw = self.store.get(LAST_FETCH_KEY)
        except StorageError as e:
            logger.warning(f"Error reading cache timestamp: {e}")
            return None
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring unparsable cache timestamp {raw!r}")
            return None

    def is_valid(self) -> bool:
        last_fetch = self.last_fetch_millis()
        if last_fetch is None:
            return False
        return to_millis(self.clock.now()) - last_fetch < self.ttl.total_seconds() * 1000

    def read(self) -> CacheSnapshot:
        try:
            raw_rides = self.store.get(RIDES_KEY)
            raw_profile = self.store.get(PROFILE_KEY)
            rides = json.loads(raw_rides) if raw_rides is not None else None
            profile = json.loads(raw_profile) if raw_profile is not None else None
            return CacheSnapshot(rides=rides, profile=profile)
        except (StorageError, ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Error reading from cache: {e}")
            return CacheSnapshot()

    def write(self, rides: Iterable, profile) -> bool:
        """Persist a snapshot and stamp it. Returns False if storage failed."""
        try:
            payload_rides = json.dumps([_dump_ride(r) for r in rides or []])
            payload_profile = json.dumps(_dump_profile(profile))
            self.store.set(RIDES_KEY, payload_rides)
            self.store.set(PROFILE_KEY, payload_profile)
            self.store.set(LAST_FETCH_KEY, str(to_millis(self.clock.now())))
        except (StorageError, ValueError, TypeError) as e:
            logger.error(f"Error setting cache: {e}")
            return False
        logger.debug("Cached ride feed snapshot")
        return True

    def clear(self) -> None:
        for key in CACHE_KEYS:
            try:
                self.store.delete(key)
            except StorageError as e:
                logger.warning(f"Error clearing {key}: {e}")
