"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces.

Storage itself belongs to a collaborator; these in-memory repositories
keep records in the same serialized shape that collaborator receives, so
every read goes through boundary validation.
"""

from typing import Dict, Iterable, List, Optional, Set

from src.core import RepositoryException
from src.shared.infrastructure.logging import get_logger
from src.sla.application import (
    BusinessCalendarRecord,
    IBusinessCalendarProvider,
    ISLAPolicyRepository,
    ISLATrackerRepository,
    SLAPolicyRecord,
    SLATrackerRecord,
)
from src.sla.domain import BusinessCalendar, SLAPolicy, SLATracker

logger = get_logger(__name__)


class InMemorySLAPolicyRepository(ISLAPolicyRepository):
    """
    In-memory implementation of the policy repository.

    Policies are kept in insertion order, which is the order the
    resolver's name fallback searches them. Policies given to the
    constructor are the seeded ones that ``replace_seeded`` swaps on a
    config reload; policies added later are left alone.
    """

    def __init__(self, policies: Iterable[SLAPolicy] = ()):
        self._policies: Dict[str, SLAPolicyRecord] = {}
        self._seeded: Set[str] = set()
        self.replace_seeded(policies)

    def replace_seeded(self, policies: Iterable[SLAPolicy]) -> None:
        """Replace the seeded policies, dropping those no longer declared."""
        policies = list(policies)
        keep = {policy.id for policy in policies}
        for policy_id in self._seeded - keep:
            self._policies.pop(policy_id, None)

        for policy in policies:
            taken = next(
                (
                    r for r in self._policies.values()
                    if r.id != policy.id
                    and r.organization_id == policy.organization_id
                    and r.ticket_priority_id == policy.ticket_priority_id
                ),
                None,
            )
            if taken is not None:
                logger.warning(
                    "Seeded SLA policy skipped, organization/priority already taken",
                    extra={"policy_id": policy.id, "existing_policy_id": taken.id}
                )
                keep.discard(policy.id)
                continue
            self._policies[policy.id] = SLAPolicyRecord.from_domain(policy)
        self._seeded = keep

    async def get(self, policy_id: str) -> Optional[SLAPolicy]:
        record = self._policies.get(policy_id)
        return record.to_domain() if record else None

    async def find_exact(self, organization_id: str, priority_id: str) -> Optional[SLAPolicy]:
        for record in self._policies.values():
            if (
                record.organization_id == organization_id
                and record.ticket_priority_id == priority_id
            ):
                return record.to_domain()
        return None

    async def list_by_organization(self, organization_id: str) -> List[SLAPolicy]:
        return [
            record.to_domain()
            for record in self._policies.values()
            if record.organization_id == organization_id
        ]

    async def add(self, policy: SLAPolicy) -> SLAPolicy:
        if policy.id in self._policies:
            raise RepositoryException(f"SLA policy {policy.id} already exists")
        self._policies[policy.id] = SLAPolicyRecord.from_domain(policy)
        return policy

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        if policy.id not in self._policies:
            raise RepositoryException(f"SLA policy {policy.id} not found")
        self._policies[policy.id] = SLAPolicyRecord.from_domain(policy)
        return policy

    async def delete(self, policy_id: str) -> bool:
        return self._policies.pop(policy_id, None) is not None


class InMemorySLATrackerRepository(ISLATrackerRepository):
    """
    In-memory tracker store holding each tracker as its persisted JSON.

    Reads validate the stored JSON, so a malformed record surfaces as a
    ValidationException rather than a half-built tracker.
    """

    def __init__(self):
        self._rows: Dict[str, str] = {}

    async def get(self, ticket_id: str) -> Optional[SLATracker]:
        row = self._rows.get(ticket_id)
        if row is None:
            return None
        return SLATrackerRecord.parse_persisted(row).to_domain()

    async def save(self, tracker: SLATracker) -> SLATracker:
        record = SLATrackerRecord.from_domain(tracker)
        self._rows[tracker.ticket_id] = record.model_dump_json(by_alias=True)
        return tracker

    async def list_active(self, limit: Optional[int] = None) -> List[SLATracker]:
        active = [t for t in await self.list_all() if not t.is_resolved]
        active.sort(key=lambda t: t.created_at)
        return active[:limit] if limit is not None else active

    async def list_all(self, organization_id: Optional[str] = None) -> List[SLATracker]:
        trackers = []
        for row in self._rows.values():
            tracker = SLATrackerRecord.parse_persisted(row).to_domain()
            if organization_id is None or tracker.organization_id == organization_id:
                trackers.append(tracker)
        return trackers

    def load_raw(self, ticket_id: str, row: str) -> None:
        """Store a record exactly as a collaborator persisted it."""
        self._rows[ticket_id] = row


class StaticCalendarProvider(IBusinessCalendarProvider):
    """
    Calendar provider backed by an in-memory calendar set, replaced as a
    whole when the config file is reloaded.

    Organizations without their own calendar get ``default_calendar``
    (None when not configured, which makes business-hours policies fail
    with ConfigurationException).
    """

    def __init__(
        self,
        calendars: Iterable[BusinessCalendar] = (),
        default_calendar: Optional[BusinessCalendar] = None
    ):
        self._calendars: Dict[str, BusinessCalendar] = {}
        self._default = default_calendar
        for calendar in calendars:
            self.register(calendar)

    def replace(
        self,
        calendars: Iterable[BusinessCalendar],
        default_calendar: Optional[BusinessCalendar] = None
    ) -> None:
        """Swap in a new calendar set in one step."""
        fresh = StaticCalendarProvider(calendars, default_calendar)
        self._calendars, self._default = fresh._calendars, fresh._default

    def register(self, calendar: BusinessCalendar) -> None:
        if not calendar.organization_id:
            raise RepositoryException("Calendar must belong to an organization")
        self._calendars[calendar.organization_id] = calendar

    async def get_calendar(self, organization_id: str) -> Optional[BusinessCalendar]:
        return self._calendars.get(organization_id, self._default)

    @classmethod
    def from_records(
        cls,
        records: Iterable[BusinessCalendarRecord],
        default: Optional[BusinessCalendarRecord] = None
    ) -> "StaticCalendarProvider":
        provider = cls()
        provider.load_records(records, default)
        return provider

    def load_records(
        self,
        records: Iterable[BusinessCalendarRecord],
        default: Optional[BusinessCalendarRecord] = None
    ) -> None:
        self.replace(
            (r.to_domain() for r in records),
            default.to_domain() if default else None,
        )
        logger.info(
            "Business calendars loaded",
            extra={"organizations": len(self._calendars), "has_default": default is not None}
        )
