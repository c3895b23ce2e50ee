"""
Time helpers.

All timestamps handled by the engine are timezone-aware UTC. SQLite drops
tzinfo on round trip, so values read back from the store go through
ensure_utc before any arithmetic.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
