"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from src.config import DEFAULT_ESCALATION_LEVELS, EscalationAction
from src.sla.domain.calendar import BusinessCalendar, ensure_utc
from src.sla.domain.deadlines import business_minutes_between
from src.sla.domain.pause_ledger import PauseLedger


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class following DRY principle -
    all SLA clock arithmetic in one place.
    """

    @staticmethod
    def remaining_minutes(due_at: datetime, now: datetime) -> int:
        """Whole minutes until ``due_at`` (negative once past)."""
        seconds = (ensure_utc(due_at) - ensure_utc(now)).total_seconds()
        return math.floor(seconds / 60)

    @staticmethod
    def is_breached(due_at: datetime, now: datetime) -> bool:
        return ensure_utc(due_at) <= ensure_utc(now)

    @staticmethod
    def effective_elapsed_minutes(
        created_at: datetime,
        now: datetime,
        ledger: PauseLedger,
        business_hours_only: bool,
        calendar: Optional[BusinessCalendar] = None
    ) -> float:
        """
        Minutes the SLA clock actually ran since ``created_at``.

        Paused time is subtracted. Business-hours policies measure both the
        elapsed span and the pauses in business minutes.
        """
        created_at, now = ensure_utc(created_at), ensure_utc(now)
        if now <= created_at:
            return 0.0

        if business_hours_only:
            calendar = calendar or BusinessCalendar()
            elapsed = business_minutes_between(created_at, now, calendar)
            paused = sum(
                business_minutes_between(start, end, calendar)
                for start, end in ledger.paused_intervals(now, created_at)
            )
        else:
            elapsed = (now - created_at).total_seconds() / 60
            paused = ledger.cumulative_paused_minutes(now, created_at)

        return max(0.0, elapsed - paused)

    @staticmethod
    def consumed_percentage(elapsed_minutes: float, budget_hours: float) -> float:
        """
        Share of the budget already used, unclamped (can exceed 100).

        A zero budget is fully consumed from the start.
        """
        budget_minutes = budget_hours * 60
        if budget_minutes <= 0:
            return 100.0
        return elapsed_minutes / budget_minutes * 100

    @staticmethod
    def clamp_percentage(percentage: float) -> float:
        return max(0.0, min(100.0, percentage))


class EscalationLevelConfig(BaseModel):
    """Configuration for a single escalation level."""
    level: int = Field(ge=1, description="Escalation level (1-based)")
    threshold_percent: float = Field(
        ge=0,
        description="Resolution budget consumed (%) that triggers this level"
    )
    actions: List[EscalationAction] = Field(
        default_factory=list,
        description="Actions handed to collaborators at this level"
    )


class SLAConfig(BaseModel):
    """
    SLA Configuration loaded from YAML.

    Holds the escalation thresholds; every other behavior is fixed.

    This is a value object - immutable and defined by its attributes.
    """
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=lambda: [EscalationLevelConfig(**e) for e in DEFAULT_ESCALATION_LEVELS],
        description="Escalation levels ordered by threshold"
    )

    @field_validator("escalation_levels")
    @classmethod
    def validate_escalation_levels(
        cls, v: List[EscalationLevelConfig]
    ) -> List[EscalationLevelConfig]:
        """Levels must be unique and thresholds must rise with the level."""
        ordered = sorted(v, key=lambda e: e.level)
        levels = [e.level for e in ordered]
        if len(set(levels)) != len(levels):
            raise ValueError("escalation levels must be unique")

        for lower, higher in zip(ordered, ordered[1:]):
            if higher.threshold_percent <= lower.threshold_percent:
                raise ValueError(
                    f"level {higher.level} threshold must exceed level {lower.level}"
                )
        return ordered

    def level_for(self, percentage: float) -> Optional[EscalationLevelConfig]:
        """Highest level whose threshold ``percentage`` has reached."""
        matched = None
        for esc in self.escalation_levels:
            if percentage >= esc.threshold_percent:
                matched = esc
        return matched

    def get_actions_for_level(self, level: int) -> List[EscalationAction]:
        """Get the action set configured for a level."""
        for esc in self.escalation_levels:
            if esc.level == level:
                return list(esc.actions)
        return []
