"""
SLA Application DTOs
=====================

Data Transfer Objects for the persistence and notification boundary.

These Pydantic models handle serialization/deserialization and validation
of the plain records exchanged with collaborators. Field names are
snake_case in Python and camelCase on the wire; every instant is coerced
to UTC when a record is validated.
"""

import json
from datetime import date, datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.config import SLATransition
from src.core import ConfigurationException, ValidationException
from src.sla.domain import (
    BusinessCalendar,
    Holiday,
    PauseLedger,
    PausePeriod,
    SLAPolicy,
    SLAPolicySnapshot,
    SLATracker,
    Ticket,
    WeeklyWindow,
    ensure_utc,
    parse_clock_time,
    parse_weekday,
)


class RecordModel(BaseModel):
    """Base for boundary records: camelCase aliases, UTC instants."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Naive datetimes are taken as UTC; aware ones are converted."""
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


# ========== Ticket / Policy ==========

class TicketRecord(RecordModel):
    """Ticket fields the engine reads."""
    id: str = Field(..., min_length=1, description="Ticket ID")
    organization_id: str = Field(..., min_length=1)
    priority_id: Optional[str] = None
    priority_name: Optional[str] = Field(
        None, description="Used by the policy resolver's name fallback"
    )
    created_at: datetime
    status_name: str = ""

    def to_domain(self) -> Ticket:
        """Convert to domain entity."""
        return Ticket(
            id=self.id,
            organization_id=self.organization_id,
            priority_id=self.priority_id,
            created_at=self.created_at,
            status_name=self.status_name,
            priority_name=self.priority_name,
        )

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketRecord":
        """Create from domain entity."""
        return cls(
            id=ticket.id,
            organization_id=ticket.organization_id,
            priority_id=ticket.priority_id,
            priority_name=ticket.priority_name,
            created_at=ticket.created_at,
            status_name=ticket.status_name,
        )


class SLAPolicyRecord(RecordModel):
    """SLA policy as stored by the administration collaborator."""
    id: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    ticket_priority_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    first_response_hours: float = Field(..., ge=0)
    next_response_hours: Optional[float] = Field(None, ge=0)
    resolution_hours: float = Field(..., ge=0)
    business_hours_only: bool = True

    def to_domain(self) -> SLAPolicy:
        return SLAPolicy(
            id=self.id,
            organization_id=self.organization_id,
            ticket_priority_id=self.ticket_priority_id,
            name=self.name,
            description=self.description,
            first_response_hours=self.first_response_hours,
            next_response_hours=self.next_response_hours,
            resolution_hours=self.resolution_hours,
            business_hours_only=self.business_hours_only,
        )

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "SLAPolicyRecord":
        return cls(
            id=policy.id,
            organization_id=policy.organization_id,
            ticket_priority_id=policy.ticket_priority_id,
            name=policy.name,
            description=policy.description,
            first_response_hours=policy.first_response_hours,
            next_response_hours=policy.next_response_hours,
            resolution_hours=policy.resolution_hours,
            business_hours_only=policy.business_hours_only,
        )


# ========== Business Calendar ==========

class WeeklyWindowRecord(RecordModel):
    """
    One weekly window.

    ``weekday`` accepts an index (Monday is 0) or a name; ``start``/``end``
    accept ``HH:MM`` strings or minutes after midnight.
    """
    weekday: int
    start: int
    end: int

    @field_validator("weekday", mode="before")
    @classmethod
    def validate_weekday(cls, v: Union[int, str]) -> int:
        try:
            return parse_weekday(v)
        except ConfigurationException as e:
            raise ValueError(e.message) from e

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_clock(cls, v: Union[int, str]) -> int:
        if isinstance(v, str):
            try:
                return parse_clock_time(v)
            except ConfigurationException as e:
                raise ValueError(e.message) from e
        return v

    def to_domain(self) -> WeeklyWindow:
        return WeeklyWindow(
            weekday=self.weekday, start_minute=self.start, end_minute=self.end
        )


class HolidayRecord(RecordModel):
    """Full-day holiday exception."""
    day: date = Field(..., alias="date")
    name: str = ""
    recurring: bool = False

    def to_domain(self) -> Holiday:
        return Holiday(date=self.day, name=self.name, recurring=self.recurring)


class BusinessCalendarRecord(RecordModel):
    """An organization's business hours and holidays."""
    organization_id: Optional[str] = None
    timezone: str = "UTC"
    windows: List[WeeklyWindowRecord] = Field(default_factory=list)
    holidays: List[HolidayRecord] = Field(default_factory=list)

    def to_domain(self) -> BusinessCalendar:
        """
        Convert to domain value object.

        Raises:
            ConfigurationException: overlapping windows or an unknown time zone
        """
        return BusinessCalendar(
            windows=tuple(w.to_domain() for w in self.windows),
            holidays=tuple(h.to_domain() for h in self.holidays),
            timezone=self.timezone,
            organization_id=self.organization_id,
        )

    @classmethod
    def from_domain(cls, calendar: BusinessCalendar) -> "BusinessCalendarRecord":
        return cls(
            organization_id=calendar.organization_id,
            timezone=calendar.timezone,
            windows=[
                WeeklyWindowRecord(weekday=w.weekday, start=w.start_minute, end=w.end_minute)
                for w in calendar.windows
            ],
            holidays=[
                HolidayRecord(date=h.date, name=h.name, recurring=h.recurring)
                for h in calendar.holidays
            ],
        )


# ========== Tracker ==========

class PausePeriodRecord(RecordModel):
    """Serialized pause period: ``{startedAt, endedAt?}``."""
    started_at: datetime
    ended_at: Optional[datetime] = None


class SLATrackerRecord(RecordModel):
    """
    Persisted tracker ("SLA policy ticket").

    ``pause_periods`` accepts the canonical list, a JSON string of that list,
    or the legacy ``{"pausePeriods": [...]}`` envelope (object or string).
    Output always uses the canonical list form.
    """
    ticket_id: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    created_at: datetime

    policy_id: Optional[str] = None
    first_response_hours: Optional[float] = Field(None, ge=0)
    next_response_hours: Optional[float] = Field(None, ge=0)
    resolution_hours: Optional[float] = Field(None, ge=0)
    business_hours_only: bool = True

    first_response_due_at: Optional[datetime] = None
    next_response_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    first_response_met: Optional[bool] = None
    next_response_met: Optional[bool] = None
    resolution_met: Optional[bool] = None

    pause_periods: List[PausePeriodRecord] = Field(default_factory=list)

    @field_validator("pause_periods", mode="before")
    @classmethod
    def parse_pause_periods(cls, v: Any) -> Any:
        if v is None or v == "":
            return []
        if isinstance(v, (str, bytes)):
            try:
                v = json.loads(v)
            except json.JSONDecodeError as e:
                raise ValueError(f"pause periods are not valid JSON: {e.msg}") from e
        if isinstance(v, dict):
            if "pausePeriods" not in v:
                raise ValueError("pause period envelope must contain 'pausePeriods'")
            v = v["pausePeriods"] or []
        if not isinstance(v, list):
            raise ValueError("pause periods must be a list")
        return v

    @classmethod
    def parse_persisted(cls, data: Any) -> "SLATrackerRecord":
        """
        Validate a raw persisted record.

        Raises:
            ValidationException: the record has the wrong shape
        """
        try:
            if isinstance(data, (str, bytes)):
                return cls.model_validate_json(data)
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValidationException(
                "Malformed SLA tracker record",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

    def pause_periods_json(self) -> str:
        """Canonical JSON array of ``{startedAt, endedAt}``."""
        return json.dumps(
            [p.model_dump(mode="json", by_alias=True) for p in self.pause_periods],
            separators=(",", ":"),
        )

    def to_domain(self) -> SLATracker:
        """
        Convert to the tracker aggregate.

        Raises:
            ValidationException: pause periods overlap, are out of order,
                or a policy snapshot is incomplete
        """
        policy = None
        if self.policy_id is not None:
            if self.first_response_hours is None or self.resolution_hours is None:
                raise ValidationException(
                    "Tracker policy snapshot is incomplete",
                    {"ticket_id": self.ticket_id, "policy_id": self.policy_id}
                )
            policy = SLAPolicySnapshot(
                policy_id=self.policy_id,
                first_response_hours=self.first_response_hours,
                next_response_hours=self.next_response_hours,
                resolution_hours=self.resolution_hours,
                business_hours_only=self.business_hours_only,
            )

        try:
            ledger = PauseLedger([
                PausePeriod(started_at=p.started_at, ended_at=p.ended_at)
                for p in self.pause_periods
            ])
        except ValueError as e:
            raise ValidationException(
                f"Invalid pause periods: {e}", {"ticket_id": self.ticket_id}
            ) from e

        return SLATracker(
            ticket_id=self.ticket_id,
            organization_id=self.organization_id,
            created_at=self.created_at,
            policy=policy,
            first_response_due_at=self.first_response_due_at,
            next_response_due_at=self.next_response_due_at,
            resolution_due_at=self.resolution_due_at,
            first_response_met=self.first_response_met,
            next_response_met=self.next_response_met,
            resolution_met=self.resolution_met,
            pause_ledger=ledger,
        )

    @classmethod
    def from_domain(cls, tracker: SLATracker) -> "SLATrackerRecord":
        policy = tracker.policy
        return cls(
            ticket_id=tracker.ticket_id,
            organization_id=tracker.organization_id,
            created_at=tracker.created_at,
            policy_id=policy.policy_id if policy else None,
            first_response_hours=policy.first_response_hours if policy else None,
            next_response_hours=policy.next_response_hours if policy else None,
            resolution_hours=policy.resolution_hours if policy else None,
            business_hours_only=policy.business_hours_only if policy else True,
            first_response_due_at=tracker.first_response_due_at,
            next_response_due_at=tracker.next_response_due_at,
            resolution_due_at=tracker.resolution_due_at,
            first_response_met=tracker.first_response_met,
            next_response_met=tracker.next_response_met,
            resolution_met=tracker.resolution_met,
            pause_periods=[
                PausePeriodRecord(started_at=p.started_at, ended_at=p.ended_at)
                for p in tracker.pause_ledger.periods
            ],
        )


# ========== Results ==========

class ScanResult(BaseModel):
    """Outcome of one escalation scan."""
    processed: int = Field(default=0, description="Trackers evaluated")
    escalated: int = Field(default=0, description="Trackers at level 1 or above")
    errors: int = Field(default=0, description="Trackers that failed")
    skipped: int = Field(default=0, description="Trackers without a policy")
    timed_out: bool = Field(default=False, description="Scan stopped at its deadline")
    error_messages: List[str] = Field(default_factory=list)


class StatusChangeResult(BaseModel):
    """Outcome of a lifecycle event handler."""
    success: bool
    action: str = Field(
        default=SLATransition.NONE.value,
        description="pause, resume, complete, reassign or none"
    )
    message: str = ""
    error: Optional[str] = None


class ComplianceSummary(BaseModel):
    """Met/missed counts and compliance rates across trackers."""
    total_tickets: int = 0
    first_response_met: int = 0
    first_response_missed: int = 0
    resolution_met: int = 0
    resolution_missed: int = 0
    first_response_compliance: float = Field(
        default=100.0, description="Percentage of measured first responses that met SLA"
    )
    resolution_compliance: float = Field(
        default=100.0, description="Percentage of measured resolutions that met SLA"
    )


class SLASeedData(BaseModel):
    """Calendars and policies declared in the YAML config file."""
    default_calendar: Optional[BusinessCalendarRecord] = Field(
        None, description="Used for organizations without their own calendar"
    )
    calendars: List[BusinessCalendarRecord] = Field(default_factory=list)
    policies: List[SLAPolicyRecord] = Field(default_factory=list)
