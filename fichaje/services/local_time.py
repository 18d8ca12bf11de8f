from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fichaje.settings import get_settings

logger = logging.getLogger("fichaje.time")


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


@lru_cache
def resolve_timezone(name: str | None = None) -> ZoneInfo:
    fallback = (get_settings().default_timezone or "").strip() or "Europe/Madrid"
    raw_name = (name or "").strip() or fallback
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", extra={"timezone": raw_name, "fallback": fallback})
        return ZoneInfo(fallback)


def local_date(ts_utc: datetime, tz: ZoneInfo) -> date:
    return normalize_ts(ts_utc).astimezone(tz).date()


def local_day_bounds_utc(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    local_start = datetime.combine(day, time.min, tzinfo=tz)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def minutes_of_day(ts_utc: datetime, tz: ZoneInfo) -> int:
    local = normalize_ts(ts_utc).astimezone(tz)
    return local.hour * 60 + local.minute


def combine_local_minutes(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    local = datetime.combine(day, time.min, tzinfo=tz) + timedelta(minutes=minutes)
    return local.astimezone(timezone.utc)


def iter_days(start: date, end: date):
    cursor = start
    while cursor <= end:
        yield cursor
        cursor += timedelta(days=1)
