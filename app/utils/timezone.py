from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.types.errors import InvalidTimezone

UTC = timezone.utc


@lru_cache(maxsize=256)
def get_zone(name: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for *name* or raise ``InvalidTimezone``."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezone(str(name))
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidTimezone(name) from None


def validate_timezone(name: str) -> str:
    get_zone(name)
    return name.strip()


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)
