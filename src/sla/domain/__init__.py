"""
SLA Domain Layer
================

Domain layer for the SLA deadline and escalation engine.

Contains:
- Entities: Core business objects with identity (Ticket, SLAPolicy, SLATracker)
- Value Objects: Immutable objects defined by attributes (BusinessCalendar, SLAConfig)
- Domain Services: Stateless business logic (deadlines, SLACalculator, status classifier)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.sla.domain.calendar import (
    BusinessCalendar,
    Holiday,
    WeeklyWindow,
    ensure_utc,
    parse_clock_time,
    parse_weekday,
    utc_now,
)
from src.sla.domain.deadlines import (
    add_business_duration,
    add_wall_clock_duration,
    business_minutes_between,
    calculate_due_at,
    extend_due_at,
)
from src.sla.domain.entities import (
    NotificationEvent,
    SLAPolicy,
    SLAPolicySnapshot,
    SLAStatus,
    SLATracker,
    Ticket,
)
from src.sla.domain.pause_ledger import PauseLedger, PausePeriod
from src.sla.domain.status import classify, decide_transition
from src.sla.domain.value_objects import (
    EscalationLevelConfig,
    SLACalculator,
    SLAConfig,
)

__all__ = [
    # Calendar & deadlines
    "BusinessCalendar",
    "Holiday",
    "WeeklyWindow",
    "ensure_utc",
    "utc_now",
    "parse_clock_time",
    "parse_weekday",
    "add_business_duration",
    "add_wall_clock_duration",
    "business_minutes_between",
    "calculate_due_at",
    "extend_due_at",
    # Entities
    "Ticket",
    "SLAPolicy",
    "SLAPolicySnapshot",
    "SLAStatus",
    "SLATracker",
    "NotificationEvent",
    "PauseLedger",
    "PausePeriod",
    # Status classification
    "classify",
    "decide_transition",
    # Value Objects & Services
    "SLACalculator",
    "SLAConfig",
    "EscalationLevelConfig",
]
