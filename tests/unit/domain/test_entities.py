"""Unit tests for the SLA tracker aggregate and related entities.

Tests cover:
- Status reporting and percentages on wall-clock policies
- Pause/resume accounting and due-date extension
- Outcome flags set exactly once
- Business-hours trackers
- Trackers without a policy
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.config import PAUSED_REMAINING_MINUTES, EscalationAction, SLAEventAction
from src.sla.domain import (
    NotificationEvent,
    SLAPolicy,
    SLATracker,
    Ticket,
)

T0 = datetime(2024, 3, 4, 0, 0, tzinfo=timezone.utc)


def h(n: float) -> datetime:
    return T0 + timedelta(hours=n)


@pytest.fixture
def tracker(wall_clock_policy) -> SLATracker:
    return SLATracker("t-1", "org-1", T0).assign(wall_clock_policy.snapshot())


class TestSLAPolicy:
    """Tests for SLAPolicy."""

    def test_negative_hours_rejected(self) -> None:
        """Test budgets must be non-negative."""
        with pytest.raises(ValueError):
            SLAPolicy("p", "o", "prio", "Bad", first_response_hours=-1, resolution_hours=1)

    def test_matches_name_or_description(self, business_policy) -> None:
        """Test name matching is case-insensitive and checks the description."""
        assert business_policy.matches_name("NORMAL")
        assert business_policy.matches_name("business-hours")
        assert not business_policy.matches_name("urgent")

    def test_snapshot_copies_budgets(self, wall_clock_policy) -> None:
        """Test the snapshot carries the hour budgets."""
        snapshot = wall_clock_policy.snapshot()
        assert snapshot.policy_id == "pol-wall"
        assert snapshot.resolution_hours == 24
        assert snapshot.business_hours_only is False


class TestTicket:
    """Tests for Ticket."""

    def test_status_category(self) -> None:
        """Test the status name is classified on demand."""
        ticket = Ticket("t-1", "org-1", "prio", T0, status_name="Pending Customer")
        assert ticket.status_category.value == "pending"

    def test_naive_created_at_becomes_utc(self) -> None:
        """Test naive creation times are taken as UTC."""
        ticket = Ticket("t-1", "org-1", "prio", datetime(2024, 3, 4))
        assert ticket.created_at == T0


class TestTrackerStatus:
    """Tests for SLATracker.status on a 24h wall-clock policy."""

    def test_assign_computes_due_dates_from_creation(self, tracker) -> None:
        """Test due dates are creation plus budget."""
        assert tracker.first_response_due_at == h(4)
        assert tracker.resolution_due_at == h(24)
        assert tracker.next_response_due_at is None

    def test_at_twenty_hours(self, tracker) -> None:
        """Test 20h into a 24h budget is about 83% and not breached."""
        status = tracker.status(h(20))
        assert status.resolution_percentage == pytest.approx(83.33, abs=0.01)
        assert status.is_resolution_breached is False
        assert status.resolution_remaining_minutes == 240

    def test_at_twenty_five_hours(self, tracker) -> None:
        """Test 25h into a 24h budget is breached with negative remaining time."""
        status = tracker.status(h(25))
        assert status.is_resolution_breached is True
        assert status.resolution_remaining_minutes < 0
        assert status.resolution_percentage == 100

    def test_breach_at_exact_due_instant(self, tracker) -> None:
        """Test remaining <= 0 counts as breached."""
        assert tracker.status(h(24)).is_resolution_breached is True

    def test_first_response_percentage_uses_its_own_budget(self, tracker) -> None:
        """Test first-response percentage is measured against its 4h budget."""
        assert tracker.status(h(2)).first_response_percentage == pytest.approx(50)

    def test_unclamped_percentage_exceeds_hundred(self, tracker) -> None:
        """Test consumed_percentage is not clamped."""
        assert tracker.consumed_percentage(h(30)) == pytest.approx(125)

    def test_status_to_dict(self, tracker) -> None:
        """Test the dictionary form nests each clock."""
        data = tracker.status(h(1)).to_dict()
        assert data["ticket_id"] == "t-1"
        assert data["resolution"]["remaining_minutes"] == 23 * 60
        assert data["next_response"]["is_breached"] is None


class TestPauseResume:
    """Tests for pause/resume on the tracker."""

    def test_ten_hour_pause_halves_percentage(self, tracker) -> None:
        """Test paused at 10h, resumed at 20h: 10h effective, about 42%."""
        tracker.pause(h(10))
        tracker.resume(h(20))
        status = tracker.status(h(20))
        assert status.resolution_percentage == pytest.approx(41.67, abs=0.01)
        assert tracker.resolution_due_at == h(34)

    def test_five_hour_pause(self, tracker) -> None:
        """Test paused at 10h for 5h: 15h effective at 20h."""
        tracker.pause(h(10))
        tracker.resume(h(15))
        assert tracker.status(h(20)).resolution_percentage == pytest.approx(62.5)

    def test_paused_status_is_frozen(self, tracker) -> None:
        """Test a paused tracker reports no breach, sentinel remaining, 0%."""
        tracker.pause(h(10))
        status = tracker.status(h(30))
        assert status.is_paused is True
        assert status.is_first_response_breached is False
        assert status.is_resolution_breached is False
        assert status.resolution_remaining_minutes == PAUSED_REMAINING_MINUTES
        assert status.resolution_percentage == 0
        assert tracker.consumed_percentage(h(30)) == 0

    def test_pause_twice_keeps_one_period(self, tracker) -> None:
        """Test pausing an already-paused tracker changes nothing."""
        tracker.pause(h(1))
        tracker.pause(h(2))
        assert len(tracker.pause_ledger.periods) == 1
        assert tracker.pause_ledger.periods[0].started_at == h(1)

    def test_resume_without_pause_is_noop(self, tracker) -> None:
        """Test resuming a running tracker leaves due dates alone."""
        tracker.resume(h(5))
        assert tracker.resolution_due_at == h(24)
        assert tracker.pause_ledger.periods == []

    def test_overdue_deadline_is_extended_by_pause(self, tracker) -> None:
        """Test an overdue first response moves out by the pause like any unmet clock."""
        tracker.pause(h(6))
        tracker.resume(h(8))
        assert tracker.first_response_due_at == h(6)
        assert tracker.resolution_due_at == h(26)

    def test_overdue_remaining_agrees_with_percentage(self, tracker) -> None:
        """Test remaining minutes and percentage both exclude the paused time."""
        tracker.pause(h(6))
        tracker.resume(h(8))
        status = tracker.status(h(9))
        assert status.first_response_remaining_minutes == -180
        assert status.is_first_response_breached is True
        assert tracker.consumed_percentage(h(9), budget_hours=4) == pytest.approx(175)

    def test_met_clock_is_not_extended(self, tracker) -> None:
        """Test a recorded first response keeps its due date."""
        tracker.record_first_response(h(1))
        tracker.pause(h(2))
        tracker.resume(h(3))
        assert tracker.first_response_due_at == h(4)

    def test_percentage_is_monotonic_in_time(self, tracker) -> None:
        """Test consumed percentage never decreases as now advances."""
        tracker.pause(h(5))
        tracker.resume(h(9))
        values = [tracker.consumed_percentage(h(step / 2)) for step in range(0, 80)]
        assert values == sorted(values)


class TestOutcomes:
    """Tests for met flags."""

    def test_first_response_met_once(self, tracker) -> None:
        """Test the first recorded response wins."""
        tracker.record_first_response(h(3))
        tracker.record_first_response(h(9))
        assert tracker.first_response_met is True

    def test_late_first_response_is_breach(self, tracker) -> None:
        """Test a late response is recorded as missed and stays breached."""
        tracker.record_first_response(h(5))
        assert tracker.first_response_met is False
        assert tracker.status(h(6)).is_first_response_breached is True

    def test_met_first_response_is_never_breached(self, tracker) -> None:
        """Test a met clock reports no breach after its due date."""
        tracker.record_first_response(h(1))
        assert tracker.status(h(10)).is_first_response_breached is False

    def test_resolution(self, tracker) -> None:
        """Test resolution before the due date is met."""
        tracker.record_resolution(h(23))
        assert tracker.resolution_met is True
        assert tracker.is_resolved

    def test_resolution_while_paused_resumes_first(self, tracker) -> None:
        """Test resolving a paused ticket closes the pause before settling."""
        tracker.pause(h(10))
        tracker.record_resolution(h(30))
        assert tracker.is_paused is False
        assert tracker.resolution_due_at == h(44)
        assert tracker.resolution_met is True
        assert tracker.pause_ledger.periods[0].ended_at == h(30)
        assert tracker.status(h(31)).is_resolution_breached is False

    def test_reset_next_response_window(self, tracker) -> None:
        """Test the next-response clock restarts from now."""
        tracker.reset_next_response_window(h(5))
        tracker.record_next_response(h(8))
        assert tracker.next_response_met is False
        tracker.reset_next_response_window(h(10))
        assert tracker.next_response_due_at == h(12)
        assert tracker.next_response_met is None
        status = tracker.status(h(11))
        assert status.next_response_remaining_minutes == 60
        assert status.is_next_response_breached is False

    def test_reassign_resets_flags_and_keeps_pauses(self, tracker, wall_clock_policy) -> None:
        """Test reassignment recomputes from creation and replays closed pauses."""
        tracker.record_first_response(h(1))
        tracker.pause(h(10))
        tracker.resume(h(12))
        tracker.assign(wall_clock_policy.snapshot())
        assert tracker.first_response_met is None
        assert tracker.first_response_due_at == h(6)
        assert tracker.resolution_due_at == h(26)


class TestBusinessHoursTracker:
    """Tests for trackers on a business-hours policy."""

    FRIDAY_16 = datetime(2024, 3, 1, 16, 0, tzinfo=timezone.utc)

    @pytest.fixture
    def biz_tracker(self, business_policy, weekday_calendar) -> SLATracker:
        return SLATracker("t-2", "org-1", self.FRIDAY_16).assign(
            business_policy.snapshot(), weekday_calendar
        )

    def test_due_dates(self, biz_tracker) -> None:
        """Test due dates skip the weekend."""
        assert biz_tracker.first_response_due_at == datetime(2024, 3, 4, 12, tzinfo=timezone.utc)
        assert biz_tracker.resolution_due_at == datetime(2024, 3, 4, 16, tzinfo=timezone.utc)

    def test_percentage_counts_business_minutes(self, biz_tracker, weekday_calendar) -> None:
        """Test the weekend does not consume budget."""
        monday_noon = datetime(2024, 3, 4, 12, tzinfo=timezone.utc)
        status = biz_tracker.status(monday_noon, weekday_calendar)
        assert status.first_response_percentage == pytest.approx(100)
        assert status.resolution_percentage == pytest.approx(50)

    def test_resume_extends_by_business_minutes(self, biz_tracker, weekday_calendar) -> None:
        """Test a pause over the weekend credits only its 90 business minutes."""
        biz_tracker.pause(datetime(2024, 3, 1, 16, 30, tzinfo=timezone.utc))
        biz_tracker.resume(datetime(2024, 3, 4, 10, tzinfo=timezone.utc), weekday_calendar)
        assert biz_tracker.first_response_due_at == datetime(2024, 3, 4, 13, 30, tzinfo=timezone.utc)
        assert biz_tracker.resolution_due_at == datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)


class TestTrackerWithoutPolicy:
    """Tests for trackers that have no policy."""

    def test_operations_are_noops(self) -> None:
        """Test every operation returns the tracker unchanged."""
        tracker = SLATracker("t-3", "org-1", T0)
        assert tracker.status(h(1)) is None
        assert tracker.consumed_percentage(h(1)) is None
        assert tracker.pause(h(1)) is tracker
        assert tracker.resume(h(2)) is tracker
        assert tracker.record_first_response(h(1)).first_response_met is None
        assert tracker.record_resolution(h(1)).resolution_met is None
        assert tracker.reset_next_response_window(h(1)).next_response_due_at is None
        assert tracker.pause_ledger.periods == []


class TestNotificationEvent:
    """Tests for NotificationEvent."""

    def test_escalation_payload(self) -> None:
        """Test escalation events carry level and percentage."""
        event = NotificationEvent("t-1", EscalationAction.NOTIFY_MANAGER, 2, 95.4321, T0)
        assert event.to_dict() == {
            "ticketId": "t-1",
            "action": "notify_manager",
            "level": 2,
            "percentage": 95.43,
            "occurredAt": T0.isoformat(),
        }

    def test_lifecycle_payload_omits_level(self) -> None:
        """Test pause events have no level or percentage."""
        payload = NotificationEvent("t-1", SLAEventAction.PAUSED, occurred_at=T0).to_dict()
        assert payload == {"ticketId": "t-1", "action": "sla_paused", "occurredAt": T0.isoformat()}
