"""Timestamp helpers.

State stores timestamps as ISO-8601 strings in UTC with millisecond
precision and a trailing ``Z``.
"""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional
from uuid import uuid4
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp or date; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@lru_cache(maxsize=16)
def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def new_id() -> str:
    """Random 128-bit hex identifier."""
    return uuid4().hex
