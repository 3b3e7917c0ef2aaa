"""
Deadline Calculator
===================

Pure functions turning an hour budget into a due instant, either by plain
instant arithmetic or by walking a BusinessCalendar.
"""

from datetime import datetime, timedelta

from src.core import ConfigurationException
from src.sla.domain.calendar import BusinessCalendar, ensure_utc

_ZERO = timedelta(0)


def add_wall_clock_duration(start: datetime, hours: float) -> datetime:
    """Return ``start + hours`` (24/7 time)."""
    if hours < 0:
        raise ValueError("hours must be >= 0")
    return ensure_utc(start) + timedelta(hours=hours)


def add_business_duration(
    start: datetime,
    hours: float,
    calendar: BusinessCalendar
) -> datetime:
    """
    Consume ``hours`` of business time from ``start``.

    Time before the next window opens does not count. When the budget runs
    out inside a window the result lands inside that window (at most at its
    close, never past it).

    Raises:
        ConfigurationException: the calendar has no windows.
    """
    if hours < 0:
        raise ValueError("hours must be >= 0")
    if not calendar.has_windows:
        raise ConfigurationException(
            "Business hours requested but the calendar defines no windows",
            {"organization_id": calendar.organization_id}
        )

    start = ensure_utc(start)
    remaining = timedelta(hours=hours)
    if remaining <= _ZERO:
        return start

    for window_start, window_end in calendar.business_intervals(start):
        available = window_end - window_start
        if available >= remaining:
            return window_start + remaining
        remaining -= available

    # business_intervals only ends by raising
    raise ConfigurationException("Business calendar walk ended unexpectedly")


def business_minutes_between(
    start: datetime,
    end: datetime,
    calendar: BusinessCalendar
) -> float:
    """Business minutes inside ``[start, end]``."""
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        return 0.0

    total = _ZERO
    for window_start, window_end in calendar.business_intervals(start, until=end):
        if window_start >= end:
            break
        total += min(window_end, end) - window_start
    return total.total_seconds() / 60


def calculate_due_at(
    start: datetime,
    hours: float,
    business_hours_only: bool,
    calendar: BusinessCalendar | None = None
) -> datetime:
    """Dispatch to the business-hours or wall-clock variant."""
    if business_hours_only:
        return add_business_duration(start, hours, calendar or BusinessCalendar())
    return add_wall_clock_duration(start, hours)


def extend_due_at(
    due_at: datetime,
    paused_from: datetime,
    paused_until: datetime,
    business_hours_only: bool,
    calendar: BusinessCalendar | None = None
) -> datetime:
    """
    Push ``due_at`` forward by the length of a pause.

    Business-hours policies only credit the business minutes the pause
    covered; wall-clock policies credit the whole interval.
    """
    if paused_until <= paused_from:
        return ensure_utc(due_at)

    if business_hours_only:
        calendar = calendar or BusinessCalendar()
        minutes = business_minutes_between(paused_from, paused_until, calendar)
        if minutes <= 0:
            return ensure_utc(due_at)
        return add_business_duration(due_at, minutes / 60, calendar)

    return ensure_utc(due_at) + (ensure_utc(paused_until) - ensure_utc(paused_from))
