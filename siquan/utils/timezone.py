"""
siquan/utils/timezone.py — UTC timestamps and site-timezone display
All timestamps are stored as naive UTC; conversion happens only for display.
"""
from __future__ import annotations

from datetime import datetime

import pytz

from siquan.config import get_settings

settings = get_settings()

UTC = pytz.utc


def site_tz():
    return pytz.timezone(settings.site_timezone)


def utc_now() -> datetime:
    """Return current UTC datetime, naive, as stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_site_time(dt: datetime) -> datetime:
    """Convert a stored (naive UTC) datetime to the site timezone."""
    if dt.tzinfo is None:
        dt = UTC.localize(dt)
    return dt.astimezone(site_tz())


def isoformat_utc(dt: datetime) -> str:
    """ISO-8601 with a trailing Z, the format clients expect."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"


def format_display_date(dt: datetime) -> str:
    """'January 05, 2025' style date used in emails and post pages."""
    return to_site_time(dt).strftime("%B %d, %Y")


def current_year() -> int:
    return to_site_time(utc_now()).year


def to_naive_utc(dt: datetime) -> datetime:
    """
    Normalise a client-supplied datetime for storage.
    Naive input is taken to be site-local time, as entered in the editor.
    """
    if dt.tzinfo is None:
        dt = site_tz().localize(dt)
    return dt.astimezone(UTC).replace(tzinfo=None)
