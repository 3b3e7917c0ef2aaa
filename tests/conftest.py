"""
Pytest configuration and shared fixtures for SLA engine tests.

Testing Standards:
- All async tests run under asyncio auto mode (configured in pyproject.toml)
- Use AsyncMock for async collaborators
- Unit tests go in tests/unit/
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List
from unittest.mock import AsyncMock

import pytest

from src.sla.application import ISLAConfigProvider, INotificationDispatcher
from src.sla.domain import (
    BusinessCalendar,
    NotificationEvent,
    SLAConfig,
    SLAPolicy,
    WeeklyWindow,
)
from src.sla.infrastructure import (
    InMemorySLAPolicyRepository,
    InMemorySLATrackerRepository,
    SLAStatusCache,
    StaticCalendarProvider,
)

# Monday 2024-03-04 00:00 UTC
T0 = datetime(2024, 3, 4, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


class StaticConfigProvider(ISLAConfigProvider):
    """Config provider returning a fixed SLAConfig."""

    def __init__(self, config: SLAConfig | None = None):
        self.config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self.config


class RecordingDispatcher(INotificationDispatcher):
    """Dispatcher keeping every event in memory."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)


class FixedClock:
    """Settable clock for services that default to the current time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def project_version() -> str:
    """Provide the current project version for tests."""
    from src import __version__

    return __version__


@pytest.fixture
def weekday_calendar() -> BusinessCalendar:
    """Mon-Fri 09:00-17:00 UTC."""
    return BusinessCalendar(
        windows=tuple(WeeklyWindow(day, 9 * 60, 17 * 60) for day in range(5)),
        organization_id="org-1",
    )


@pytest.fixture
def wall_clock_policy() -> SLAPolicy:
    return SLAPolicy(
        id="pol-wall",
        organization_id="org-1",
        ticket_priority_id="prio-high",
        name="High priority",
        first_response_hours=4,
        next_response_hours=2,
        resolution_hours=24,
        business_hours_only=False,
    )


@pytest.fixture
def business_policy() -> SLAPolicy:
    return SLAPolicy(
        id="pol-biz",
        organization_id="org-1",
        ticket_priority_id="prio-normal",
        name="Normal",
        description="Standard business-hours support",
        first_response_hours=4,
        next_response_hours=8,
        resolution_hours=8,
        business_hours_only=True,
    )


@pytest.fixture
def policy_repository(wall_clock_policy, business_policy) -> InMemorySLAPolicyRepository:
    return InMemorySLAPolicyRepository([wall_clock_policy, business_policy])


@pytest.fixture
def tracker_repository() -> InMemorySLATrackerRepository:
    return InMemorySLATrackerRepository()


@pytest.fixture
def calendar_provider(weekday_calendar) -> StaticCalendarProvider:
    return StaticCalendarProvider([weekday_calendar])


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def status_cache() -> SLAStatusCache:
    return SLAStatusCache(ttl_seconds=300)


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def mock_dispatcher() -> AsyncMock:
    dispatcher = AsyncMock(spec=INotificationDispatcher)
    return dispatcher


@pytest.fixture
def config_provider() -> StaticConfigProvider:
    return StaticConfigProvider()


@pytest.fixture
def make_time() -> Callable[..., datetime]:
    """Build UTC datetimes tersely: make_time(2024, 3, 1, 16)."""

    def _make(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
        return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)

    return _make
