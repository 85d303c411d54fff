"""
Centralised date and time helpers.

Conventions used across the service:
    - Timestamps coming from the store are ISO-8601 strings in UTC.
    - Calendar-day decisions (deadline buckets, "today") use the application
      timezone, ``APP_TIMEZONE`` (default ``Africa/Maputo``).
    - Due dates may be plain dates (``YYYY-MM-DD``); those are due at the end
      of that day in the application timezone.

Usage:
    from bizdesk.utils.datetime_utils import now_aware, parse_due_date
"""

import os
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

APP_TZ = ZoneInfo(os.getenv("APP_TIMEZONE", "Africa/Maputo"))

END_OF_DAY = time(23, 59, 59, 999999)


def get_timezone(name: str | None = None) -> ZoneInfo:
    """Return ``ZoneInfo`` for ``name`` or the application timezone."""
    if not name:
        return APP_TZ
    return ZoneInfo(name)


def now_aware(tz: ZoneInfo | None = None) -> datetime:
    """Current time in the application timezone (aware)."""
    return datetime.now(tz or APP_TZ)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime, tz: ZoneInfo | None = None) -> datetime:
    """
    Attach a timezone to naive datetimes.

    Naive values are assumed to be in ``tz`` (or UTC when ``tz`` is None).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or timezone.utc)
    return dt


def parse_timestamp(value) -> datetime | None:
    """
    Parse an ISO-8601 timestamp returned by the store.

    Accepts ``datetime`` instances, strings with a trailing ``Z`` and naive
    strings (assumed UTC). Returns ``None`` for empty values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def parse_due_date(value, tz: ZoneInfo | None = None) -> datetime | None:
    """
    Return the instant a task is due.

    Plain dates are due at the last instant of that calendar day in ``tz``;
    timestamps without offset are read in ``tz`` as well.
    """
    tz = tz or APP_TZ
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, END_OF_DAY, tzinfo=tz)
    text = str(value).strip()
    if len(text) == 10:
        return datetime.combine(date.fromisoformat(text), END_OF_DAY, tzinfo=tz)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text), tz)


def to_iso(dt: datetime) -> str:
    """Serialise ``dt`` as an ISO string in UTC."""
    return ensure_aware(dt).astimezone(timezone.utc).isoformat()


def local_date(dt: datetime, tz: ZoneInfo | None = None) -> date:
    """Calendar day of ``dt`` in ``tz``."""
    return ensure_aware(dt).astimezone(tz or APP_TZ).date()


def format_date_br(dt: datetime, tz: ZoneInfo | None = None) -> str:
    return ensure_aware(dt).astimezone(tz or APP_TZ).strftime("%d/%m/%Y")


def format_time_br(dt: datetime, tz: ZoneInfo | None = None) -> str:
    return ensure_aware(dt).astimezone(tz or APP_TZ).strftime("%H:%M")
