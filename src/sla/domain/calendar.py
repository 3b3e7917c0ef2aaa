"""
Business Calendar
=================

An organization's recurring weekly working-hour windows plus full-day
holiday exceptions.

Windows are expressed in the calendar's local time zone; every instant
that enters or leaves this module is a timezone-aware UTC ``datetime``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core import ConfigurationException

MINUTES_PER_DAY = 24 * 60

# Consecutive days without any business time before a walk gives up.
MAX_IDLE_DAYS = 400

WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
)

Interval = Tuple[datetime, datetime]


def ensure_utc(value: datetime) -> datetime:
    """Normalize an instant to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WeeklyWindow:
    """
    One working-hour window on a weekday.

    ``weekday`` follows ``date.weekday()`` (Monday is 0). Minutes are
    counted from local midnight; a window may not reach 24:00.
    """

    weekday: int
    start_minute: int
    end_minute: int

    def __post_init__(self):
        if not 0 <= self.weekday <= 6:
            raise ConfigurationException(
                f"weekday must be 0-6, got {self.weekday}",
                {"weekday": self.weekday}
            )
        if not 0 <= self.start_minute < self.end_minute < MINUTES_PER_DAY:
            raise ConfigurationException(
                "business window must satisfy 0 <= start < end < 24:00",
                {
                    "weekday": self.weekday,
                    "start_minute": self.start_minute,
                    "end_minute": self.end_minute,
                }
            )

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    def overlaps(self, other: "WeeklyWindow") -> bool:
        return (
            self.weekday == other.weekday
            and self.start_minute < other.end_minute
            and other.start_minute < self.end_minute
        )


@dataclass(frozen=True)
class Holiday:
    """A full-day exception; recurring holidays repeat every year."""

    date: date
    name: str = ""
    recurring: bool = False

    def matches(self, day: date) -> bool:
        if self.recurring:
            return (self.date.month, self.date.day) == (day.month, day.day)
        return self.date == day


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Immutable snapshot of an organization's business hours.

    Treated as read-only for the duration of any computation.
    """

    windows: Tuple[WeeklyWindow, ...] = ()
    holidays: Tuple[Holiday, ...] = ()
    timezone: str = "UTC"
    organization_id: Optional[str] = None
    _zone: ZoneInfo = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        ordered = tuple(sorted(self.windows, key=lambda w: (w.weekday, w.start_minute)))
        for previous, current in zip(ordered, ordered[1:]):
            if previous.overlaps(current):
                raise ConfigurationException(
                    "business windows on the same weekday must not overlap",
                    {"weekday": current.weekday}
                )
        try:
            zone = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationException(
                f"unknown calendar time zone: {self.timezone}",
                {"timezone": self.timezone}
            ) from e

        object.__setattr__(self, "windows", ordered)
        object.__setattr__(self, "holidays", tuple(self.holidays))
        object.__setattr__(self, "_zone", zone)

    @property
    def has_windows(self) -> bool:
        return bool(self.windows)

    @property
    def weekly_business_minutes(self) -> int:
        return sum(w.duration_minutes for w in self.windows)

    def is_holiday(self, day: date) -> bool:
        return any(h.matches(day) for h in self.holidays)

    def windows_for(self, weekday: int) -> List[WeeklyWindow]:
        return [w for w in self.windows if w.weekday == weekday]

    def local_date(self, instant: datetime) -> date:
        return ensure_utc(instant).astimezone(self._zone).date()

    def intervals_on(self, day: date) -> List[Interval]:
        """UTC intervals of business time on a local calendar date."""
        if self.is_holiday(day):
            return []

        intervals = []
        for window in self.windows_for(day.weekday()):
            start = self._to_utc(day, window.start_minute)
            end = self._to_utc(day, window.end_minute)
            if end > start:
                intervals.append((start, end))
        return intervals

    def business_intervals(
        self,
        start: datetime,
        until: Optional[datetime] = None
    ) -> Iterator[Interval]:
        """
        Yield business intervals from ``start`` onward in chronological order.

        The first interval is clipped so it never begins before ``start``.
        The walk stops once a local day begins after ``until``.

        Raises:
            ConfigurationException: no windows are defined, or no business
                time exists for MAX_IDLE_DAYS consecutive days.
        """
        if not self.windows:
            raise ConfigurationException(
                "Business hours requested but the calendar defines no windows",
                {"organization_id": self.organization_id}
            )
        return self._walk(ensure_utc(start), ensure_utc(until) if until else None)

    def is_within_business_hours(self, instant: datetime) -> bool:
        instant = ensure_utc(instant)
        day = self.local_date(instant)
        return any(s <= instant <= e for s, e in self.intervals_on(day))

    def _walk(self, start: datetime, until: Optional[datetime]) -> Iterator[Interval]:
        # Start one day early: a local day can begin before the UTC date.
        day = self.local_date(start) - timedelta(days=1)
        idle_days = 0

        while True:
            if until is not None and self._to_utc(day, 0) > until:
                return

            yielded = False
            for s, e in self.intervals_on(day):
                if e <= start:
                    continue
                yielded = True
                yield max(s, start), e

            idle_days = 0 if yielded else idle_days + 1
            if idle_days > MAX_IDLE_DAYS:
                raise ConfigurationException(
                    f"No business time found within {MAX_IDLE_DAYS} days",
                    {"organization_id": self.organization_id, "from": start.isoformat()}
                )
            day += timedelta(days=1)

    def _to_utc(self, day: date, minute_of_day: int) -> datetime:
        local_time = time(minute_of_day // 60, minute_of_day % 60)
        local = datetime.combine(day, local_time, tzinfo=self._zone)
        return local.astimezone(timezone.utc)


def parse_clock_time(value: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight."""
    try:
        hours, minutes = value.strip().split(":")[:2]
        total = int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError) as e:
        raise ConfigurationException(f"invalid clock time: {value!r}") from e
    if not 0 <= total <= MINUTES_PER_DAY:
        raise ConfigurationException(f"clock time out of range: {value!r}")
    return total


def parse_weekday(value) -> int:
    """Accept a weekday index (Monday is 0) or an English weekday name."""
    if isinstance(value, int):
        return value
    name = str(value).strip().lower()
    if name.isdigit():
        return int(name)
    for index, weekday in enumerate(WEEKDAY_NAMES):
        if weekday.startswith(name[:3]) and len(name) >= 3:
            return index
    raise ConfigurationException(f"unknown weekday: {value!r}")
