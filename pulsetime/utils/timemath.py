"""
Pure time helpers: elapsed minutes, period boundaries, duration formatting.
"""
from __future__ import annotations
import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Tuple, Union
from zoneinfo import ZoneInfo

from pulsetime.errors import ValidationError
from pulsetime.models import Period

logger = logging.getLogger(__name__)

Bounds = Tuple[datetime, datetime]

_DURATION_RE = re.compile(r"^\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*$")


def get_zone(tz: Union[str, tzinfo, None]) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """
    Whole minutes between two instants, rounded half-up.
    A negative span is clamped to 0 and logged.
    """
    seconds = (end - start).total_seconds()
    if seconds < 0:
        logger.warning(f"Negative time span clamped to 0: start={start} end={end}")
        return 0
    return int(math.floor(seconds / 60 + 0.5))


def start_of_day(instant: datetime, tz: Union[str, tzinfo, None] = None) -> datetime:
    zone = get_zone(tz)
    local = instant.astimezone(zone)
    return datetime.combine(local.date(), time.min, tzinfo=zone)


def period_bounds(
    period: Union[Period, str],
    reference: datetime,
    tz: Union[str, tzinfo, None] = None,
) -> Bounds:
    """
    [start, reference) for a named period. Weeks start on Monday.
    """
    period = Period(period)
    zone = get_zone(tz)
    day = start_of_day(reference, zone)

    if period is Period.TODAY:
        start = day
    elif period is Period.WEEK:
        start = day - timedelta(days=day.weekday())
    elif period is Period.MONTH:
        start = day.replace(day=1)
    else:
        start = day.replace(month=1, day=1)

    return start, reference


def range_bounds(
    start_date: date,
    end_date: date,
    tz: Union[str, tzinfo, None] = None,
) -> Bounds:
    """Explicit calendar range, both dates inclusive."""
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )
    zone = get_zone(tz)
    start = datetime.combine(start_date, time.min, tzinfo=zone)
    end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=zone)
    return start, end


def previous_bounds(start: datetime, end: datetime) -> Bounds:
    """The window of equal length immediately before [start, end)."""
    return start - (end - start), start


def day_key(instant: datetime, tz: Union[str, tzinfo, None] = None) -> str:
    return instant.astimezone(get_zone(tz)).strftime("%Y-%m-%d")


def format_duration(minutes: int) -> str:
    """125 -> '2h 5m', 45 -> '45m', 180 -> '3h'."""
    if not minutes or minutes < 0:
        return "0m"
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def parse_duration(text: str) -> int:
    """Inverse of format_duration."""
    match = _DURATION_RE.match(text or "")
    if not match or not any(match.groups()):
        raise ValidationError(f"Unrecognized duration: {text!r}")
    hours, mins = match.groups()
    return int(hours or 0) * 60 + int(mins or 0)
