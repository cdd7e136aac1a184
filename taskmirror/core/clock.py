"""Wall-clock helpers.

Timestamps are stored as naive UTC datetimes. Calendar dates used by the
routine scheduler are evaluated in the configured timezone.
"""

import time
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_ms() -> int:
    """Milliseconds since the epoch as observed by this process."""
    return int(time.time() * 1000)


def local_today(tz: str) -> date:
    """Today's date in the given IANA timezone."""
    return datetime.now(ZoneInfo(tz)).date()


def to_local_date(value: datetime, tz: str) -> date:
    """Calendar date of a naive UTC datetime in the given timezone."""
    return value.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz)).date()
