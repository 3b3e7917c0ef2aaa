"""
Pause Ledger
============

Ordered record of the intervals during which a ticket's SLA clock was
suspended.

Invariants:
- periods are chronological and never overlap
- at most one period is open (``ended_at is None``) and it is the last one
- a closed period never ends before it starts
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from src.sla.domain.calendar import ensure_utc

Interval = Tuple[datetime, datetime]


@dataclass
class PausePeriod:
    """A single suspension of the SLA clock."""

    started_at: datetime
    ended_at: Optional[datetime] = None

    def __post_init__(self):
        self.started_at = ensure_utc(self.started_at)
        if self.ended_at is not None:
            self.ended_at = ensure_utc(self.ended_at)
            if self.ended_at < self.started_at:
                raise ValueError("ended_at cannot be before started_at")

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def duration_minutes(self, as_of: datetime) -> float:
        end = self.ended_at or ensure_utc(as_of)
        return max(0.0, (end - self.started_at).total_seconds() / 60)

    def clip(self, not_before: datetime, as_of: datetime) -> Optional[Interval]:
        """Portion of this period inside ``[not_before, as_of]``, if any."""
        end = self.ended_at if self.ended_at is not None else as_of
        start = max(self.started_at, not_before)
        end = min(end, as_of)
        if end <= start:
            return None
        return start, end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass
class PauseLedger:
    """Pause/resume bookkeeping for one tracker."""

    periods: List[PausePeriod] = field(default_factory=list)

    def __post_init__(self):
        for previous, current in zip(self.periods, self.periods[1:]):
            if previous.is_open:
                raise ValueError("only the last pause period may be open")
            if current.started_at < previous.ended_at:
                raise ValueError("pause periods must be chronological and disjoint")

    @property
    def is_paused(self) -> bool:
        return bool(self.periods) and self.periods[-1].is_open

    @property
    def active_period(self) -> Optional[PausePeriod]:
        return self.periods[-1] if self.is_paused else None

    def closed_periods(self) -> List[PausePeriod]:
        return [p for p in self.periods if not p.is_open]

    def open(self, at: datetime) -> "PauseLedger":
        """Start a pause; no-op when one is already open."""
        if self.is_paused:
            return self

        at = ensure_utc(at)
        if self.periods and at < self.periods[-1].ended_at:
            at = self.periods[-1].ended_at
        self.periods.append(PausePeriod(started_at=at))
        return self

    def close(self, at: datetime) -> float:
        """
        End the open pause and return its length in minutes.

        Returns 0 when nothing is open. ``at`` is clamped so the period
        never ends before it started.
        """
        period = self.active_period
        if period is None:
            return 0.0

        period.ended_at = max(ensure_utc(at), period.started_at)
        return period.duration_minutes(period.ended_at)

    def paused_intervals(self, as_of: datetime, not_before: datetime) -> List[Interval]:
        """Every pause clipped to ``[not_before, as_of]``."""
        as_of, not_before = ensure_utc(as_of), ensure_utc(not_before)
        intervals = []
        for period in self.periods:
            clipped = period.clip(not_before, as_of)
            if clipped is not None:
                intervals.append(clipped)
        return intervals

    def cumulative_paused_minutes(self, as_of: datetime, not_before: datetime) -> float:
        """Total paused minutes overlapping ``[not_before, as_of]``."""
        total = timedelta(0)
        for start, end in self.paused_intervals(as_of, not_before):
            total += end - start
        return max(0.0, total.total_seconds() / 60)

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.periods]
