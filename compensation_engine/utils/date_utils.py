"""Date manipulation utilities"""

from datetime import date, datetime, timezone, tzinfo
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of a moment in the given timezone (naive values are UTC)"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def same_local_day(first: Optional[datetime], second: datetime, tz: tzinfo) -> bool:
    """True when both moments fall on the same local calendar date"""
    if first is None:
        return False
    return local_date(first, tz) == local_date(second, tz)


def as_utc(moment: datetime) -> datetime:
    """Normalize to aware UTC; SQLite drops offsets, so rows are written in UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
