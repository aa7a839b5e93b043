import re
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import TypeAdapter, ValidationError

from config import MATCH_TIMEZONE

_DATETIME = TypeAdapter(datetime)


def get_zone(name: str = MATCH_TIMEZONE):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def parse_timestamp(value, tz=None) -> Optional[datetime]:
    """Return an aware datetime or None.

    Naive values are taken to be in ``tz`` (UTC by default).
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = _DATETIME.validate_python(text)
        except ValidationError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz or timezone.utc)
    return dt


def combine_departure(day: date, at: time, tz=None) -> datetime:
    """Combine a form's date and time into an aware datetime."""
    return datetime.combine(day, at).replace(tzinfo=tz or get_zone())


def format_departure(dep, tz=None) -> str:
    """Human readable departure, e.g. 'Mon, Mar 3 08:15 AM'."""
    dt = parse_timestamp(dep)
    if dt is None:
        return "Time not specified"
    local = dt.astimezone(tz or get_zone())
    return f"{local:%a, %b} {local.day} {local:%I:%M %p}"


def whatsapp_link(number: Optional[str]) -> Optional[str]:
    digits = re.sub(r"\D", "", number or "")
    if not digits:
        return None
    return f"https://wa.me/{digits}"
