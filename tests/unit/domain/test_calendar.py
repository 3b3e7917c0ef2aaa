"""Unit tests for the business calendar and deadline calculator.

Tests cover:
- WeeklyWindow / BusinessCalendar validation
- Business-hours membership (inclusive window end)
- add_business_duration across weekends, holidays and time zones
- add_wall_clock_duration
- business_minutes_between
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.core import ConfigurationException
from src.sla.domain import (
    BusinessCalendar,
    Holiday,
    WeeklyWindow,
    add_business_duration,
    add_wall_clock_duration,
    business_minutes_between,
    calculate_due_at,
    extend_due_at,
    parse_clock_time,
    parse_weekday,
)

FRIDAY_16 = datetime(2024, 3, 1, 16, 0, tzinfo=timezone.utc)
MONDAY = date(2024, 3, 4)


class TestWeeklyWindow:
    """Tests for WeeklyWindow validation."""

    def test_duration(self) -> None:
        """Test duration is end minus start."""
        assert WeeklyWindow(0, 540, 1020).duration_minutes == 480

    def test_rejects_window_reaching_midnight(self) -> None:
        """Test a window may not end at 24:00."""
        with pytest.raises(ConfigurationException):
            WeeklyWindow(0, 1200, 1440)

    def test_rejects_empty_window(self) -> None:
        """Test start must be before end."""
        with pytest.raises(ConfigurationException):
            WeeklyWindow(0, 600, 600)

    def test_rejects_bad_weekday(self) -> None:
        """Test weekday must be 0-6."""
        with pytest.raises(ConfigurationException):
            WeeklyWindow(7, 0, 60)


class TestBusinessCalendar:
    """Tests for BusinessCalendar queries."""

    def test_overlapping_windows_rejected(self) -> None:
        """Test two windows on one weekday may not overlap."""
        with pytest.raises(ConfigurationException):
            BusinessCalendar(windows=(WeeklyWindow(0, 540, 720), WeeklyWindow(0, 700, 900)))

    def test_unknown_timezone_rejected(self) -> None:
        """Test an unknown IANA zone is a configuration error."""
        with pytest.raises(ConfigurationException):
            BusinessCalendar(windows=(WeeklyWindow(0, 540, 600),), timezone="Mars/Olympus")

    def test_multiple_windows_per_day_sorted(self) -> None:
        """Test windows are kept in weekday/start order."""
        calendar = BusinessCalendar(
            windows=(WeeklyWindow(0, 780, 1080), WeeklyWindow(0, 480, 720))
        )
        assert [w.start_minute for w in calendar.windows] == [480, 780]
        assert calendar.weekly_business_minutes == 540

    def test_within_business_hours(self, weekday_calendar) -> None:
        """Test membership inside, at the closing instant, and outside."""
        assert weekday_calendar.is_within_business_hours(FRIDAY_16)
        assert weekday_calendar.is_within_business_hours(FRIDAY_16.replace(hour=17))
        assert not weekday_calendar.is_within_business_hours(FRIDAY_16.replace(hour=17, minute=1))
        assert not weekday_calendar.is_within_business_hours(FRIDAY_16 + timedelta(days=1))

    def test_holiday_is_not_business_time(self, weekday_calendar) -> None:
        """Test a holiday removes the whole day."""
        calendar = BusinessCalendar(
            windows=weekday_calendar.windows, holidays=(Holiday(MONDAY, "Closed"),)
        )
        assert calendar.intervals_on(MONDAY) == []
        assert not calendar.is_within_business_hours(datetime(2024, 3, 4, 10, tzinfo=timezone.utc))

    def test_recurring_holiday_matches_every_year(self) -> None:
        """Test recurring holidays match on month and day."""
        holiday = Holiday(date(2020, 12, 25), "Christmas", recurring=True)
        assert holiday.matches(date(2024, 12, 25))
        assert not holiday.matches(date(2024, 12, 26))
        assert not Holiday(date(2020, 12, 25)).matches(date(2024, 12, 25))


class TestAddBusinessDuration:
    """Tests for add_business_duration."""

    def test_friday_afternoon_rolls_to_monday(self, weekday_calendar) -> None:
        """Test 1h Friday + weekend skipped + 3h Monday lands Monday 12:00."""
        due = add_business_duration(FRIDAY_16, 4, weekday_calendar)
        assert due == datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)

    def test_holiday_monday_is_skipped(self, weekday_calendar) -> None:
        """Test a Monday holiday pushes the remainder to Tuesday."""
        calendar = BusinessCalendar(
            windows=weekday_calendar.windows, holidays=(Holiday(MONDAY),)
        )
        due = add_business_duration(FRIDAY_16, 4, calendar)
        assert due == datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)

    def test_start_before_window_waits_for_open(self, weekday_calendar) -> None:
        """Test time before the window opens does not count."""
        start = datetime(2024, 3, 4, 6, 0, tzinfo=timezone.utc)
        assert add_business_duration(start, 2, weekday_calendar) == start.replace(hour=11)

    def test_budget_ending_at_close_stays_in_window(self, weekday_calendar) -> None:
        """Test an exact fit returns the closing instant, not the next day."""
        start = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
        assert add_business_duration(start, 8, weekday_calendar) == start.replace(hour=17)

    def test_zero_hours_returns_start(self, weekday_calendar) -> None:
        """Test a zero budget returns the start unchanged."""
        saturday = datetime(2024, 3, 2, 3, 0, tzinfo=timezone.utc)
        assert add_business_duration(saturday, 0, weekday_calendar) == saturday

    def test_never_lands_outside_business_time(self, weekday_calendar) -> None:
        """Test results for many budgets fall inside business hours."""
        start = datetime(2024, 3, 1, 18, 30, tzinfo=timezone.utc)
        for quarter_hours in range(1, 120):
            due = add_business_duration(start, quarter_hours / 4, weekday_calendar)
            assert weekday_calendar.is_within_business_hours(due)

    def test_no_windows_raises(self) -> None:
        """Test an empty calendar fails instead of looping."""
        with pytest.raises(ConfigurationException):
            add_business_duration(FRIDAY_16, 1, BusinessCalendar())

    def test_business_policy_without_calendar_raises(self) -> None:
        """Test business-hours dispatch never falls back to wall-clock time."""
        with pytest.raises(ConfigurationException):
            calculate_due_at(FRIDAY_16, 1, business_hours_only=True, calendar=None)

    def test_calendar_time_zone(self) -> None:
        """Test windows are read in the calendar's zone (EST = UTC-5 in March)."""
        calendar = BusinessCalendar(
            windows=tuple(WeeklyWindow(day, 540, 1020) for day in range(5)),
            timezone="America/New_York",
        )
        start = datetime(2024, 3, 4, 13, 0, tzinfo=timezone.utc)
        assert add_business_duration(start, 1, calendar) == start.replace(hour=15)

    def test_naive_start_is_treated_as_utc(self, weekday_calendar) -> None:
        """Test naive inputs are interpreted as UTC."""
        due = add_business_duration(datetime(2024, 3, 1, 16, 0), 4, weekday_calendar)
        assert due == datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class TestWallClockAndMinutes:
    """Tests for wall-clock arithmetic and business minute counting."""

    @pytest.mark.parametrize("budget", [0, 0.5, 4, 24, 100.25])
    def test_wall_clock_is_plain_addition(self, budget: float) -> None:
        """Test add_wall_clock_duration(start, h) == start + h."""
        assert add_wall_clock_duration(FRIDAY_16, budget) == FRIDAY_16 + timedelta(hours=budget)

    def test_negative_hours_rejected(self) -> None:
        """Test negative budgets are invalid."""
        with pytest.raises(ValueError):
            add_wall_clock_duration(FRIDAY_16, -1)

    def test_business_minutes_over_weekend(self, weekday_calendar) -> None:
        """Test Friday 16:00 to Monday 10:00 holds two business hours."""
        end = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
        assert business_minutes_between(FRIDAY_16, end, weekday_calendar) == 120

    def test_business_minutes_reversed_range_is_zero(self, weekday_calendar) -> None:
        """Test an empty range holds no business time."""
        assert business_minutes_between(FRIDAY_16, FRIDAY_16, weekday_calendar) == 0

    def test_extend_due_at_business(self, weekday_calendar) -> None:
        """Test a pause over the weekend credits only its business minutes."""
        due = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)
        resumed = datetime(2024, 3, 4, 10, 0, tzinfo=timezone.utc)
        extended = extend_due_at(due, FRIDAY_16, resumed, True, weekday_calendar)
        assert extended == due + timedelta(hours=2)

    def test_extend_due_at_wall_clock(self) -> None:
        """Test wall-clock extension adds the exact pause length."""
        extended = extend_due_at(FRIDAY_16, FRIDAY_16, FRIDAY_16 + timedelta(minutes=37), False)
        assert extended == FRIDAY_16 + timedelta(minutes=37)


class TestParsers:
    """Tests for clock time and weekday parsing."""

    def test_parse_clock_time(self) -> None:
        """Test HH:MM converts to minutes after midnight."""
        assert parse_clock_time("09:30") == 570

    def test_parse_clock_time_invalid(self) -> None:
        """Test malformed clock times are configuration errors."""
        with pytest.raises(ConfigurationException):
            parse_clock_time("nine")

    @pytest.mark.parametrize("value,expected", [("Monday", 0), ("fri", 4), ("6", 6), (3, 3)])
    def test_parse_weekday(self, value, expected: int) -> None:
        """Test weekday names and indexes are accepted."""
        assert parse_weekday(value) == expected
