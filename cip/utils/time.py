from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

TZ_STOCKHOLM = ZoneInfo("Europe/Stockholm")

# Timestamps in the facilities feed, e.g. "2020-06-04 14:26:58"
UPSTREAM_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def parse_upstream_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed timestamp as UTC. Returns None if missing or malformed."""
    if not value:
        return None
    try:
        return datetime.strptime(value, UPSTREAM_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None

def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        t = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)

def to_iso(t: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, as the broker expects."""
    return t.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
