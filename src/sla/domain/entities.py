"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Every method that
needs the current time or a calendar takes it as an argument.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.config import PAUSED_REMAINING_MINUTES, EscalationAction, SLAEventAction, StatusCategory
from src.sla.domain.calendar import BusinessCalendar, ensure_utc, utc_now
from src.sla.domain.deadlines import calculate_due_at, extend_due_at
from src.sla.domain.pause_ledger import PauseLedger
from src.sla.domain.status import classify
from src.sla.domain.value_objects import SLACalculator


@dataclass
class Ticket:
    """
    The slice of a ticket the SLA engine needs.

    ``priority_name`` is only used by the policy resolver's fallback search.
    """

    id: str
    organization_id: str
    priority_id: Optional[str]
    created_at: datetime
    status_name: str = ""
    priority_name: Optional[str] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)

    @property
    def status_category(self) -> StatusCategory:
        return classify(self.status_name)


@dataclass(frozen=True)
class SLAPolicySnapshot:
    """Hour budgets copied onto a tracker when a policy is assigned."""

    policy_id: str
    first_response_hours: float
    resolution_hours: float
    next_response_hours: Optional[float] = None
    business_hours_only: bool = True


@dataclass
class SLAPolicy:
    """
    Time budgets for one (organization, priority) pair.

    Uniqueness per pair is enforced by the policy resolver, not here.
    """

    id: str
    organization_id: str
    ticket_priority_id: str
    name: str
    first_response_hours: float
    resolution_hours: float
    next_response_hours: Optional[float] = None
    business_hours_only: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        for name in ("first_response_hours", "resolution_hours", "next_response_hours"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} cannot be negative")

    def matches_name(self, text: str) -> bool:
        """Case-insensitive containment check on name or description."""
        needle = text.lower()
        return needle in self.name.lower() or (
            bool(self.description) and needle in self.description.lower()
        )

    def snapshot(self) -> SLAPolicySnapshot:
        return SLAPolicySnapshot(
            policy_id=self.id,
            first_response_hours=self.first_response_hours,
            resolution_hours=self.resolution_hours,
            next_response_hours=self.next_response_hours,
            business_hours_only=self.business_hours_only,
        )


@dataclass
class SLAStatus:
    """
    Point-in-time SLA status of a tracker.

    While paused the clock is frozen: breach flags are False, remaining
    minutes hold a sentinel and percentages are 0. That means "not counting",
    not "compliant".
    """

    ticket_id: str
    evaluated_at: datetime
    is_paused: bool
    is_first_response_breached: bool
    is_resolution_breached: bool
    first_response_remaining_minutes: int
    resolution_remaining_minutes: int
    first_response_percentage: float
    resolution_percentage: float
    is_next_response_breached: Optional[bool] = None
    next_response_remaining_minutes: Optional[int] = None

    @property
    def is_any_breached(self) -> bool:
        return (
            self.is_first_response_breached
            or self.is_resolution_breached
            or bool(self.is_next_response_breached)
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for collaborators."""
        return {
            "ticket_id": self.ticket_id,
            "evaluated_at": self.evaluated_at.isoformat(),
            "is_paused": self.is_paused,
            "first_response": {
                "is_breached": self.is_first_response_breached,
                "remaining_minutes": self.first_response_remaining_minutes,
                "percentage": self.first_response_percentage,
            },
            "next_response": {
                "is_breached": self.is_next_response_breached,
                "remaining_minutes": self.next_response_remaining_minutes,
            },
            "resolution": {
                "is_breached": self.is_resolution_breached,
                "remaining_minutes": self.resolution_remaining_minutes,
                "percentage": self.resolution_percentage,
            },
        }


@dataclass
class SLATracker:
    """
    Aggregate owning a ticket's due dates, outcome flags and pause ledger.

    Every ``*_met`` flag moves from None to a boolean exactly once.
    Operations on a tracker without a policy leave it unchanged.
    """

    ticket_id: str
    organization_id: str
    created_at: datetime
    policy: Optional[SLAPolicySnapshot] = None
    first_response_due_at: Optional[datetime] = None
    next_response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    first_response_met: Optional[bool] = None
    next_response_met: Optional[bool] = None
    resolution_met: Optional[bool] = None
    pause_ledger: PauseLedger = field(default_factory=PauseLedger)

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        for name in ("first_response_due_at", "next_response_due_at", "resolution_due_at"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, ensure_utc(value))

    @property
    def has_policy(self) -> bool:
        return self.policy is not None

    @property
    def is_paused(self) -> bool:
        return self.pause_ledger.is_paused

    @property
    def is_resolved(self) -> bool:
        return self.resolution_met is not None

    # ========== Assignment ==========

    def assign(
        self,
        policy: SLAPolicySnapshot,
        calendar: Optional[BusinessCalendar] = None
    ) -> "SLATracker":
        """
        Apply ``policy`` with due dates measured from ticket creation.

        Outcome flags reset. Pauses that already ended still push the new
        due dates out; the next-response window restarts on the next
        customer reply.
        """
        self.policy = policy
        self.first_response_due_at = calculate_due_at(
            self.created_at, policy.first_response_hours, policy.business_hours_only, calendar
        )
        self.resolution_due_at = calculate_due_at(
            self.created_at, policy.resolution_hours, policy.business_hours_only, calendar
        )
        self.next_response_due_at = None
        self.first_response_met = None
        self.next_response_met = None
        self.resolution_met = None

        for period in self.pause_ledger.closed_periods():
            self._extend_open_clocks(period.started_at, period.ended_at, calendar)
        return self

    # ========== Outcomes ==========

    def record_first_response(self, at: datetime) -> "SLATracker":
        if self.has_policy and self.first_response_met is None:
            self.first_response_met = ensure_utc(at) <= self.first_response_due_at
        return self

    def record_next_response(self, at: datetime) -> "SLATracker":
        if (
            self.has_policy
            and self.next_response_due_at is not None
            and self.next_response_met is None
        ):
            self.next_response_met = ensure_utc(at) <= self.next_response_due_at
        return self

    def record_resolution(
        self,
        at: datetime,
        calendar: Optional[BusinessCalendar] = None
    ) -> "SLATracker":
        """
        Settle the resolution clock at ``at``.

        A ticket resolved straight from a paused state is resumed first, so
        the final wait does not count against it.
        """
        if self.has_policy and self.resolution_met is None:
            if self.is_paused:
                self.resume(at, calendar)
            self.resolution_met = ensure_utc(at) <= self.resolution_due_at
        return self

    def reset_next_response_window(
        self,
        now: datetime,
        calendar: Optional[BusinessCalendar] = None
    ) -> "SLATracker":
        """Restart the next-response clock from ``now``."""
        if not self.has_policy or self.policy.next_response_hours is None:
            return self

        self.next_response_due_at = calculate_due_at(
            now, self.policy.next_response_hours, self.policy.business_hours_only, calendar
        )
        self.next_response_met = None
        return self

    # ========== Pause / resume ==========

    def pause(self, now: datetime) -> "SLATracker":
        if self.has_policy:
            self.pause_ledger.open(now)
        return self

    def resume(
        self,
        now: datetime,
        calendar: Optional[BusinessCalendar] = None
    ) -> "SLATracker":
        """Close the open pause and push every unmet due date out by it."""
        if not self.has_policy or not self.is_paused:
            return self

        period = self.pause_ledger.active_period
        self.pause_ledger.close(now)
        self._extend_open_clocks(period.started_at, period.ended_at, calendar)
        return self

    def _extend_open_clocks(
        self,
        paused_from: datetime,
        paused_until: datetime,
        calendar: Optional[BusinessCalendar]
    ) -> None:
        # Every clock without a recorded outcome, overdue ones included.
        business = self.policy.business_hours_only
        for due_name, met_name in (
            ("first_response_due_at", "first_response_met"),
            ("next_response_due_at", "next_response_met"),
            ("resolution_due_at", "resolution_met"),
        ):
            due_at = getattr(self, due_name)
            if due_at is None or getattr(self, met_name) is not None:
                continue
            setattr(self, due_name, extend_due_at(
                due_at, paused_from, paused_until, business, calendar
            ))

    # ========== Status ==========

    def consumed_percentage(
        self,
        now: datetime,
        calendar: Optional[BusinessCalendar] = None,
        budget_hours: Optional[float] = None
    ) -> Optional[float]:
        """
        Unclamped share of a budget consumed (resolution by default).

        None without a policy; 0 while paused.
        """
        if not self.has_policy:
            return None
        if self.is_paused:
            return 0.0

        elapsed = SLACalculator.effective_elapsed_minutes(
            self.created_at, now, self.pause_ledger,
            self.policy.business_hours_only, calendar
        )
        if budget_hours is None:
            budget_hours = self.policy.resolution_hours
        return SLACalculator.consumed_percentage(elapsed, budget_hours)

    def status(
        self,
        now: datetime,
        calendar: Optional[BusinessCalendar] = None
    ) -> Optional[SLAStatus]:
        """Evaluate the tracker at ``now``; None when no policy applies."""
        if not self.has_policy:
            return None

        now = ensure_utc(now)
        has_next = self.next_response_due_at is not None

        if self.is_paused:
            return SLAStatus(
                ticket_id=self.ticket_id,
                evaluated_at=now,
                is_paused=True,
                is_first_response_breached=False,
                is_resolution_breached=False,
                first_response_remaining_minutes=PAUSED_REMAINING_MINUTES,
                resolution_remaining_minutes=PAUSED_REMAINING_MINUTES,
                first_response_percentage=0.0,
                resolution_percentage=0.0,
                is_next_response_breached=False if has_next else None,
                next_response_remaining_minutes=PAUSED_REMAINING_MINUTES if has_next else None,
            )

        first_pct = self.consumed_percentage(now, calendar, self.policy.first_response_hours)
        resolution_pct = self.consumed_percentage(now, calendar, self.policy.resolution_hours)

        return SLAStatus(
            ticket_id=self.ticket_id,
            evaluated_at=now,
            is_paused=False,
            is_first_response_breached=self._breached(
                self.first_response_due_at, self.first_response_met, now
            ),
            is_resolution_breached=self._breached(
                self.resolution_due_at, self.resolution_met, now
            ),
            first_response_remaining_minutes=SLACalculator.remaining_minutes(
                self.first_response_due_at, now
            ),
            resolution_remaining_minutes=SLACalculator.remaining_minutes(
                self.resolution_due_at, now
            ),
            first_response_percentage=SLACalculator.clamp_percentage(first_pct),
            resolution_percentage=SLACalculator.clamp_percentage(resolution_pct),
            is_next_response_breached=(
                self._breached(self.next_response_due_at, self.next_response_met, now)
                if has_next else None
            ),
            next_response_remaining_minutes=(
                SLACalculator.remaining_minutes(self.next_response_due_at, now)
                if has_next else None
            ),
        )

    @staticmethod
    def _breached(due_at: datetime, met: Optional[bool], now: datetime) -> bool:
        # A recorded outcome is final.
        if met is not None:
            return not met
        return SLACalculator.is_breached(due_at, now)


@dataclass
class NotificationEvent:
    """
    Event handed to the notification collaborator.

    The engine does not format or deliver messages.
    """

    ticket_id: str
    action: EscalationAction | SLAEventAction
    level: Optional[int] = None
    percentage: Optional[float] = None
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        payload = {
            "ticketId": self.ticket_id,
            "action": self.action.value,
            "occurredAt": ensure_utc(self.occurred_at).isoformat(),
        }
        if self.level is not None:
            payload["level"] = self.level
        if self.percentage is not None:
            payload["percentage"] = round(self.percentage, 2)
        return payload
