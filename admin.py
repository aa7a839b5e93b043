"""Admin moderation: block, unblock and delete users, delete rides.

Every successful action is followed by an audit log entry. A failed audit
write is logged but does not undo or fail the action itself.
"""
import platform
import socket
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError

import db
from clock import Clock, SystemClock
from exceptions import BackendError, NotAuthorizedError
from log import get_logger
from models import AuditAction, AuditLogEntry, Profile, Status

logger = get_logger(__name__)

USER_AGENT = f"ride-partner/0.1 python/{platform.python_version()}"


@dataclass
class Dashboard:
    users: List[dict] = field(default_factory=list)
    rides: List[dict] = field(default_factory=list)
    audit_logs: List[AuditLogEntry] = field(default_factory=list)


def require_admin(profile: Optional[Profile]) -> Profile:
    if profile is None or not profile.is_admin:
        raise NotAuthorizedError("Not authorized to access admin dashboard")
    return profile


def ride_count(user: dict) -> int:
    """Ride count from a ``rides(count)`` join."""
    rides = user.get("rides") or []
    if rides and isinstance(rides[0], dict) and "count" in rides[0]:
        return int(rides[0]["count"])
    return len(rides)


def _audit_entries(rows) -> List[AuditLogEntry]:
    entries = []
    for row in rows:
        try:
            entries.append(AuditLogEntry.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable audit entry: {e}")
    return entries


def load_dashboard(client, start=None, end=None) -> Dashboard:
    return Dashboard(
        users=db.list_profiles(client, start, end),
        rides=db.list_rides(client, start, end),
        audit_logs=_audit_entries(db.list_audit_logs(client, start, end)),
    )


class Moderator:
    """Admin actions performed by one signed-in admin."""

    def __init__(self, client, admin: Profile, admin_email: Optional[str] = None, clock: Optional[Clock] = None):
        self.client = client
        self.admin = require_admin(admin)
        self.admin_email = admin_email or admin.email or admin.user_id
        self.clock = clock or SystemClock()

    def add_audit_log(self, action: AuditAction, details: str, target_user_id: Optional[str] = None) -> bool:
        try:
            db.insert_audit_log(
                self.client,
                {
                    "user_id": self.admin.user_id,
                    "target_user_id": target_user_id,
                    "action": action.value,
                    "details": details,
                    "created_at": self.clock.now().isoformat(),
                    "ip_address": socket.gethostname(),
                    "user_agent": USER_AGENT,
                },
            )
        except BackendError as e:
            logger.error(f"Error adding audit log for {action.value}: {e}")
            return False
        return True

    def _set_status(self, user_id: str, status: Status, action: AuditAction, verb: str, label: str) -> None:
        db.set_profile_status(self.client, user_id, status.value, self.clock.now().isoformat())
        self.add_audit_log(action, f"Admin {self.admin_email} {verb} user {label}", user_id)

    def block_user(self, user_id: str, label: Optional[str] = None) -> None:
        self._set_status(user_id, Status.BLOCKED, AuditAction.BLOCK_USER, "blocked", label or user_id)

    def unblock_user(self, user_id: str, label: Optional[str] = None) -> None:
        self._set_status(user_id, Status.ACTIVE, AuditAction.UNBLOCK_USER, "unblocked", label or user_id)

    def delete_user(self, user_id: str, label: Optional[str] = None) -> None:
        db.delete_profile(self.client, user_id)
        self.add_audit_log(AuditAction.DELETE_USER, f"Admin {self.admin_email} deleted user {label or user_id}", user_id)

    def delete_ride(self, ride: dict) -> None:
        ride_id = ride.get("id")
        db.delete_ride(self.client, ride_id)
        self.add_audit_log(
            AuditAction.DELETE_RIDE,
            f"Deleted ride from {ride.get('from') or ''} to {ride.get('to') or ''} (ID: {ride_id})",
            ride.get("user_id"),
        )


def filter_users(users: List[dict], search: str = "", status: str = "all") -> List[dict]:
    needle = (search or "").lower()
    result = []
    for user in users:
        if status != "all" and (user.get("status") or Status.ACTIVE.value) != status:
            continue
        if needle and not any(needle in (user.get(k) or "").lower() for k in ("name", "email")):
            continue
        result.append(user)
    return result


def filter_rides(rides: List[dict], search: str = "") -> List[dict]:
    needle = (search or "").lower()
    if not needle:
        return list(rides)
    result = []
    for ride in rides:
        poster = (ride.get("profiles") or {}).get("name") or ""
        if any(needle in (value or "").lower() for value in (ride.get("from"), ride.get("to"), poster)):
            result.append(ride)
    return result
