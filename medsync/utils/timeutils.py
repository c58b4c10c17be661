# medsync/utils/timeutils.py
import calendar
import re
import zoneinfo
from datetime import date, datetime, timedelta, timezone

from flask import current_app, has_app_context

from medsync.errors import MalformedDateKey

DEFAULT_TZ_NAME = "UTC"
DATE_KEY_FORMAT = "%Y-%m-%d"
_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_KEY_RE = re.compile(r"^\d{4}-\d{2}$")


def utcnow():
    # Always work in UTC internally
    return datetime.now(timezone.utc)


def app_tz() -> zoneinfo.ZoneInfo:
    """
    The single zone every day boundary is computed in (APP_TIMEZONE config).
    Falls back to UTC outside an application context.
    """
    name = DEFAULT_TZ_NAME
    if has_app_context():
        name = current_app.config.get("APP_TIMEZONE") or DEFAULT_TZ_NAME
    return zoneinfo.ZoneInfo(name)


def local_today(now_utc: datetime | None = None, tz: zoneinfo.ZoneInfo | None = None) -> date:
    if tz is None:
        tz = app_tz()
    if now_utc is None:
        now_utc = utcnow()
    return now_utc.astimezone(tz).date()


def as_local_date(value, tz: zoneinfo.ZoneInfo | None = None) -> date:
    """
    Calendar day of a date, datetime or date key.
    Aware datetimes are converted to the app zone first; naive ones are taken as local.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz or app_tz())
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_date_key(value)
    raise TypeError(f"Cannot derive a calendar day from {type(value).__name__}")


def to_date_key(value, tz: zoneinfo.ZoneInfo | None = None) -> str:
    # isoformat keeps the four-digit year for years below 1000
    return as_local_date(value, tz).isoformat()


def parse_date_key(key) -> date:
    if not isinstance(key, str) or not _DATE_KEY_RE.match(key):
        raise MalformedDateKey(key)
    try:
        return datetime.strptime(key, DATE_KEY_FORMAT).date()
    except ValueError:
        # e.g. 2024-02-30
        raise MalformedDateKey(key) from None


def parse_month_key(key) -> date:
    """'YYYY-MM' -> first day of that month."""
    if not isinstance(key, str) or not _MONTH_KEY_RE.match(key):
        raise MalformedDateKey(key)
    return parse_date_key(f"{key}-01")


def window_start(reference: date, days: int) -> date:
    """First day of an inclusive trailing window of `days` ending at reference."""
    days = min(max(days, 1), (reference - date.min).days + 1)
    return reference - timedelta(days=days - 1)


def date_range(start: date, end: date):
    """Inclusive day-by-day iteration; empty when end < start."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def month_bounds(day: date) -> tuple[date, date]:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)
