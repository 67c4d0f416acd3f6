"""
Timezone utilities for the trailer rental platform.

All timestamps are stored and compared in UTC. Local time zones only matter
where a business rule is phrased in calendar days of the trailer's location
(PIN expiry at the end of the return day, the daily extension sweep).
"""

from datetime import date, datetime, time, timedelta, timezone

import pytz


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are treated as already being in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_timezone(tz_name: str) -> pytz.BaseTzInfo:
    return pytz.timezone(tz_name)


def local_date(value: datetime, tz_name: str) -> date:
    """Calendar date of ``value`` as observed in ``tz_name``."""
    return ensure_utc(value).astimezone(get_timezone(tz_name)).date()


def end_of_local_day(value: datetime, tz_name: str) -> datetime:
    """
    Return 24:00 of the local calendar day containing ``value``, as aware UTC.

    24:00 is represented as midnight at the start of the following day, so an
    end date of 2024-01-10 in Europe/Prague yields 2024-01-11T00:00+01:00.
    """
    tz = get_timezone(tz_name)
    next_day = local_date(value, tz_name) + timedelta(days=1)
    local_midnight = tz.localize(datetime.combine(next_day, time.min))
    return local_midnight.astimezone(timezone.utc)
