"""
Timezone-aware datetime utilities for the conversion reports.

Every datetime stored on a ConversionRecord is timezone-aware UTC. The two
sources disagree on how they express time (CX3ads sends a naive local string,
Everflow a Unix timestamp), so the conversions happen here.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Union
import pytz


def utc_now() -> datetime:
    """
    Get the current UTC time as a timezone-aware datetime object.

    Returns:
        datetime: Current UTC time with timezone information
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: Union[int, float, str]) -> datetime:
    """
    Convert a Unix timestamp (seconds since epoch) to a timezone-aware UTC datetime.

    Example:
        >>> utc_from_timestamp(1700000000).isoformat()
        '2023-11-14T22:13:20+00:00'
    """
    return datetime.fromtimestamp(float(timestamp), tz=timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime object is timezone-aware and in UTC.

    A naive datetime is assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)
    return dt


def local_to_utc(dt: datetime, local_tz: str = 'UTC') -> datetime:
    """
    Convert a local datetime to UTC.

    Args:
        dt: Local datetime (may be naive or timezone-aware)
        local_tz: Source timezone name used when dt is naive

    Returns:
        datetime: Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        local_timezone = pytz.timezone(local_tz)
        return local_timezone.localize(dt).astimezone(timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_source_datetime(value: Optional[str], local_tz: str = 'UTC') -> Optional[datetime]:
    """
    Parse the ISO-like date strings the sources return.

    Accepts "2024-03-01T12:30:00", "2024-03-01T12:30:00.12", "2024-03-01 12:30:00"
    and strings with an explicit offset or a trailing "Z". Naive values are read in
    `local_tz`. Anything unparseable gives None.
    """
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    # fromisoformat only takes 3 or 6 fraction digits before 3.11
    if '.' in text:
        head, _, tail = text.partition('.')
        digits = ''
        rest = ''
        for index, char in enumerate(tail):
            if not char.isdigit():
                rest = tail[index:]
                break
            digits += char
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}" if digits else head + rest

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    return local_to_utc(parsed, local_tz)


def format_cx3ads_datetime(dt: datetime) -> str:
    """
    Format a datetime the way the CX3ads report endpoint expects it
    (two fraction digits, no offset): 2024-03-01T00:00:00.00
    """
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{dt.microsecond // 10000:02d}"


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return start_of_day(dt) + timedelta(days=1) - timedelta(microseconds=10000)
