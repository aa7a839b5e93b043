from functools import lru_cache
from typing import List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from config import AUDIT_LOG_LIMIT, AVATAR_BUCKET, SUPABASE_KEY, SUPABASE_URL
from exceptions import BackendError, BackendUnavailableError
from log import get_logger

logger = get_logger(__name__)

CANDIDATE_COLUMNS = "*, profiles (name, whatsapp, email, avatar_url, gender)"
ADMIN_RIDE_COLUMNS = "*, profiles (name, email, gender, whatsapp)"
AUDIT_COLUMNS = "*, profiles:user_id (name, email), target_profiles:target_user_id (name, email)"


@lru_cache(maxsize=1)
def get_client() -> Client:
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise BackendError("Missing Supabase settings. Set SUPABASE_URL and SUPABASE_KEY in secrets or .env.")
    return create_client(SUPABASE_URL, SUPABASE_KEY)


def _describe(error) -> str:
    msg = getattr(error, "message", None) or str(error)
    code = str(getattr(error, "code", "") or "")
    if "row-level security" in msg or code == "42501" or "permission denied" in msg:
        return (
            "Request blocked by Supabase Row-Level Security. Add a policy allowing "
            f"authenticated users on this table. ({msg})"
        )
    return msg


def _execute(query, action: str) -> List[dict]:
    """Run a postgrest query and return its rows, translating failures."""
    try:
        res = query.execute()
    except httpx.TransportError as e:
        logger.warning(f"{action}: backend unreachable: {e}")
        raise BackendUnavailableError(f"{action} failed: backend unreachable") from e
    except (APIError, httpx.HTTPError) as e:
        logger.error(f"{action}: {e}")
        raise BackendError(_describe(e)) from e
    data = getattr(res, "data", None)
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def _date_range(query, start=None, end=None):
    if start:
        query = query.gte("created_at", str(start))
    if end:
        query = query.lte("created_at", str(end))
    return query


# ===========================
# PROFILES
# ===========================
def get_profile(client: Client, user_id: str) -> Optional[dict]:
    rows = _execute(client.table("profiles").select("*").eq("user_id", user_id).limit(1), "Fetching profile")
    return rows[0] if rows else None


def upsert_profile(client: Client, payload: dict) -> Optional[dict]:
    rows = _execute(client.table("profiles").upsert(payload, on_conflict="user_id"), "Saving profile")
    return rows[0] if rows else None


def delete_profile(client: Client, user_id: str):
    return _execute(client.table("profiles").delete().eq("user_id", user_id), "Deleting user")


def set_profile_status(client: Client, user_id: str, status: str, updated_at: str):
    return _execute(
        client.table("profiles").update({"status": status, "updated_at": updated_at}).eq("user_id", user_id),
        "Updating user status",
    )


def list_profiles(client: Client, start=None, end=None):
    query = client.table("profiles").select("*, rides(count)").order("created_at", desc=True)
    return _execute(_date_range(query, start, end), "Fetching users")


# ===========================
# RIDES
# ===========================
def get_my_rides(client: Client, user_id: str):
    return _execute(client.table("rides").select("time, from, to").eq("user_id", user_id), "Fetching your rides")


def get_candidate_rides(client: Client, gender: str, user_id: str):
    query = client.table("rides").select(CANDIDATE_COLUMNS).eq("gender", gender).neq("user_id", user_id)
    return _execute(query, "Fetching rides")


def list_user_rides(client: Client, user_id: str):
    query = client.table("rides").select("*").eq("user_id", user_id).order("created_at", desc=True)
    return _execute(query, "Fetching your rides")


def list_rides(client: Client, start=None, end=None):
    query = client.table("rides").select(ADMIN_RIDE_COLUMNS).order("created_at", desc=True)
    return _execute(_date_range(query, start, end), "Fetching rides")


def insert_ride(client: Client, payload: dict) -> Optional[dict]:
    rows = _execute(client.table("rides").insert(payload), "Posting ride")
    return rows[0] if rows else None


def delete_ride(client: Client, ride_id, user_id: Optional[str] = None):
    query = client.table("rides").delete().eq("id", ride_id)
    if user_id is not None:
        query = query.eq("user_id", user_id)
    return _execute(query, "Deleting ride")


# ===========================
# AUDIT LOG
# ===========================
def insert_audit_log(client: Client, payload: dict):
    return _execute(client.table("audit_logs").insert(payload), "Writing audit log")


def list_audit_logs(client: Client, start=None, end=None, limit: int = AUDIT_LOG_LIMIT):
    query = client.table("audit_logs").select(AUDIT_COLUMNS).order("created_at", desc=True)
    return _execute(_date_range(query, start, end).limit(limit), "Fetching audit log")


# ===========================
# STORAGE
# ===========================
def upload_avatar(client: Client, path: str, data: bytes, content_type: str) -> str:
    """Upload to the avatars bucket and return the public URL."""
    bucket = client.storage.from_(AVATAR_BUCKET)
    try:
        bucket.upload(path, data, {"content-type": content_type, "upsert": "true"})
    except httpx.TransportError as e:
        raise BackendUnavailableError("Uploading image failed: backend unreachable") from e
    except Exception as e:
        # storage3 error classes differ between releases
        logger.error(f"Upload error: {e}")
        raise BackendError("Error uploading image. Please try again.") from e
    return bucket.get_public_url(path)
