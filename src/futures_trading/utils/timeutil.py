"""Venue-local time helpers."""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo

DEFAULT_VENUE_TIMEZONE = "America/New_York"
DEFAULT_VENUE_TZ = ZoneInfo(DEFAULT_VENUE_TIMEZONE)


def to_venue_time(ts: datetime, tz: tzinfo) -> datetime:
    """Express a timestamp in venue-local time.

    Naive timestamps are taken to already be venue-local.
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def venue_date(ts: datetime, tz: tzinfo) -> date:
    return to_venue_time(ts, tz).date()
