from datetime import datetime, timezone as dt_timezone
from typing import Optional

from zoneinfo import ZoneInfo

from teleconsult.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional[ZoneInfo]:
    tz_name = tz_name or getattr(settings, "DEFAULT_TIMEZONE", None)
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except Exception:
        return None


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_local(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a (possibly naive UTC) datetime to the configured display timezone."""
    aware = to_utc_aware(dt)
    tz = get_zoneinfo(tz_name)
    return aware.astimezone(tz) if tz else aware
