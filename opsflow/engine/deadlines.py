"""Deadline calculation for opsflow.

Projects a deadline from a base time and an SLA measured in hours, optionally
counting only business hours on working days.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from opsflow.models.config import BusinessHours
from opsflow.models.constants import PRIORITY_SLA_MULTIPLIERS


def calculate_deadline(
    base_time: datetime,
    sla_hours: float,
    priority: str,
    business_hours_only: bool = True,
    exclude_weekends: bool = True,
    business_hours: Optional[BusinessHours] = None,
) -> datetime:
    """Calculate a deadline.

    The SLA is first scaled by priority (critical x0.5, high x0.75, medium x1,
    low x1.5). Without the business-hours restriction the scaled window is
    simply added. Otherwise the clock walks forward through the business day,
    skipping non-working days when ``exclude_weekends`` is set, until the
    window is consumed. The result always falls inside
    ``[start_hour, end_hour)`` on an allowed day.

    Timezone-aware inputs are converted to the business timezone and the
    result is returned in that timezone; naive inputs are treated as local
    wall-clock time.

    Args:
        base_time: When the clock starts
        sla_hours: Nominal SLA window in hours
        priority: Priority tier (critical/high/medium/low)
        business_hours_only: Count only business hours
        exclude_weekends: Skip days outside the configured workweek
        business_hours: Business-hours window (defaults to 08:00-17:00 Mon-Fri)

    Returns:
        Deadline timestamp
    """
    hours = business_hours or BusinessHours()
    remaining = timedelta(hours=sla_hours * PRIORITY_SLA_MULTIPLIERS[priority])

    if not business_hours_only:
        return base_time + remaining

    current = base_time
    if base_time.tzinfo is not None:
        current = base_time.astimezone(ZoneInfo(hours.timezone))

    while True:
        if exclude_weekends and current.weekday() not in hours.workdays:
            current = _day_start(current + timedelta(days=1), hours)
            continue
        if current.hour < hours.start_hour:
            current = _day_start(current, hours)
            continue
        if current.hour >= hours.end_hour:
            current = _day_start(current + timedelta(days=1), hours)
            continue
        if remaining <= timedelta(0):
            break

        left_today = _day_end(current, hours) - current
        if remaining < left_today:
            current += remaining
            remaining = timedelta(0)
        else:
            # Landing exactly on closing time rolls to the next business start.
            remaining -= left_today
            current = _day_end(current, hours)

    return current


def business_hours_between(start: datetime, end: datetime, business_hours: Optional[BusinessHours] = None,
                           exclude_weekends: bool = True) -> float:
    """Count business hours between two timestamps (0 if end <= start)."""
    hours = business_hours or BusinessHours()
    if end <= start:
        return 0.0
    if start.tzinfo is not None:
        tz = ZoneInfo(hours.timezone)
        start, end = start.astimezone(tz), end.astimezone(tz)

    total = timedelta(0)
    day = _midnight(start)
    while day < end:
        if not exclude_weekends or day.weekday() in hours.workdays:
            window_start = max(start, day + timedelta(hours=hours.start_hour))
            window_end = min(end, day + timedelta(hours=hours.end_hour))
            if window_end > window_start:
                total += window_end - window_start
        day += timedelta(days=1)
    return total.total_seconds() / 3600


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive (stored) timestamp, or convert an aware one."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """Storage form of a timestamp: naive UTC."""
    return as_utc(dt).replace(tzinfo=None)


def _midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def _day_start(dt: datetime, hours: BusinessHours) -> datetime:
    return _midnight(dt) + timedelta(hours=hours.start_hour)


def _day_end(dt: datetime, hours: BusinessHours) -> datetime:
    return _midnight(dt) + timedelta(hours=hours.end_hour)
