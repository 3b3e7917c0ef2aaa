"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from src.config import EscalationAction, SLAClock, SLAEventAction, SLATransition
from src.core import (
    ApplicationException,
    PolicyConflictException,
    ResourceNotFoundException,
)
from src.shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from src.sla.application.dto import ComplianceSummary, ScanResult, StatusChangeResult
from src.sla.domain import (
    BusinessCalendar,
    NotificationEvent,
    SLAConfig,
    SLAPolicy,
    SLAStatus,
    SLATracker,
    Ticket,
    decide_transition,
    ensure_utc,
    utc_now,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def get(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def find_exact(self, organization_id: str, priority_id: str) -> Optional[SLAPolicy]:
        """Get the policy for an (organization, priority) pair."""

    @abstractmethod
    async def list_by_organization(self, organization_id: str) -> List[SLAPolicy]:
        """List an organization's policies in creation order."""

    @abstractmethod
    async def add(self, policy: SLAPolicy) -> SLAPolicy:
        """Store a new policy."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Replace an existing policy."""

    @abstractmethod
    async def delete(self, policy_id: str) -> bool:
        """Delete a policy; False when it did not exist."""


class ISLATrackerRepository(ABC):
    """Interface for tracker data access."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[SLATracker]:
        """Get a ticket's tracker."""

    @abstractmethod
    async def save(self, tracker: SLATracker) -> SLATracker:
        """Upsert a tracker."""

    @abstractmethod
    async def list_active(self, limit: Optional[int] = None) -> List[SLATracker]:
        """Trackers whose resolution has not been recorded."""

    @abstractmethod
    async def list_all(self, organization_id: Optional[str] = None) -> List[SLATracker]:
        """Every tracker, optionally for one organization."""


class IBusinessCalendarProvider(ABC):
    """Interface for business calendar access."""

    @abstractmethod
    async def get_calendar(self, organization_id: str) -> Optional[BusinessCalendar]:
        """Get an organization's calendar, if configured."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class INotificationDispatcher(ABC):
    """Interface for the notification collaborator."""

    @abstractmethod
    async def dispatch(self, event: NotificationEvent) -> None:
        """
        Hand an event over for delivery.

        Raises:
            NotificationException: delivery failed
        """


class ISLAStatusCache(ABC):
    """Interface for short-lived status caching."""

    @abstractmethod
    def get(self, ticket_id: str) -> Optional[SLAStatus]:
        """Cached status, or None when missing or expired."""

    @abstractmethod
    def set(self, ticket_id: str, status: SLAStatus) -> None:
        """Cache a freshly computed status."""

    @abstractmethod
    def invalidate_ticket(self, ticket_id: str) -> None:
        """Drop a ticket's cached status."""


async def _calendar_for(
    provider: IBusinessCalendarProvider,
    tracker_or_policy,
    organization_id: str
) -> Optional[BusinessCalendar]:
    business = getattr(tracker_or_policy, "business_hours_only", False)
    if not business:
        return None
    return await provider.get_calendar(organization_id)


# ========== Application Services ==========

class SLAPolicyResolver:
    """
    Service for selecting and applying SLA policies.

    Also owns the policy administration path, which is where the
    one-policy-per-(organization, priority) rule is enforced.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        tracker_repository: ISLATrackerRepository,
        calendar_provider: IBusinessCalendarProvider,
        status_cache: Optional[ISLAStatusCache] = None
    ):
        self._policy_repo = policy_repository
        self._tracker_repo = tracker_repository
        self._calendar_provider = calendar_provider
        self._cache = status_cache

    async def resolve(
        self,
        organization_id: str,
        priority_id: Optional[str],
        priority_name: Optional[str] = None
    ) -> Optional[SLAPolicy]:
        """
        Find the policy for an (organization, priority) pair.

        Exact match first, then the first organization policy whose name or
        description contains the priority name. None means "no SLA applies".
        """
        if priority_id:
            policy = await self._policy_repo.find_exact(organization_id, priority_id)
            if policy is not None:
                return policy

        if not priority_name:
            return None

        for policy in await self._policy_repo.list_by_organization(organization_id):
            if policy.matches_name(priority_name):
                logger.info(
                    "SLA policy resolved by name fallback",
                    extra={
                        "organization_id": organization_id,
                        "priority_id": priority_id,
                        "policy_id": policy.id,
                    }
                )
                return policy
        return None

    async def assign(self, ticket: Ticket, policy: SLAPolicy) -> SLATracker:
        """
        Create or overwrite the ticket's tracker with ``policy``.

        Due dates are measured from ticket creation, never from now.

        Raises:
            ConfigurationException: business hours requested without windows
        """
        tracker = await self._tracker_repo.get(ticket.id)
        if tracker is None:
            tracker = SLATracker(
                ticket_id=ticket.id,
                organization_id=ticket.organization_id,
                created_at=ticket.created_at,
            )

        calendar = await _calendar_for(self._calendar_provider, policy, ticket.organization_id)
        tracker.assign(policy.snapshot(), calendar)
        await self._tracker_repo.save(tracker)
        if self._cache is not None:
            self._cache.invalidate_ticket(ticket.id)

        logger.info(
            "SLA policy assigned",
            extra={
                "ticket_id": ticket.id,
                "policy_id": policy.id,
                "first_response_due_at": tracker.first_response_due_at.isoformat(),
                "resolution_due_at": tracker.resolution_due_at.isoformat(),
            }
        )
        return tracker

    async def auto_assign(self, ticket: Ticket) -> Optional[SLATracker]:
        """Resolve and assign; no-op when that policy is already assigned."""
        policy = await self.resolve(
            ticket.organization_id, ticket.priority_id, ticket.priority_name
        )
        if policy is None:
            logger.debug(
                "No SLA policy applies",
                extra={"ticket_id": ticket.id, "priority_id": ticket.priority_id}
            )
            return None

        existing = await self._tracker_repo.get(ticket.id)
        if existing is not None and existing.policy and existing.policy.policy_id == policy.id:
            return existing

        return await self.assign(ticket, policy)

    # ========== Administration ==========

    async def create_policy(self, policy: SLAPolicy) -> SLAPolicy:
        """
        Store a new policy.

        Raises:
            PolicyConflictException: the pair already has a policy
        """
        existing = await self._policy_repo.find_exact(
            policy.organization_id, policy.ticket_priority_id
        )
        if existing is not None:
            raise PolicyConflictException(policy.organization_id, policy.ticket_priority_id)
        return await self._policy_repo.add(policy)

    async def update_policy(self, policy: SLAPolicy) -> SLAPolicy:
        """
        Replace a policy. Trackers keep the snapshot they were assigned.

        Raises:
            ResourceNotFoundException: unknown policy id
            PolicyConflictException: another policy already owns the pair
        """
        if await self._policy_repo.get(policy.id) is None:
            raise ResourceNotFoundException("SLAPolicy", policy.id)

        existing = await self._policy_repo.find_exact(
            policy.organization_id, policy.ticket_priority_id
        )
        if existing is not None and existing.id != policy.id:
            raise PolicyConflictException(policy.organization_id, policy.ticket_priority_id)
        return await self._policy_repo.update(policy)

    async def delete_policy(self, policy_id: str) -> bool:
        return await self._policy_repo.delete(policy_id)

    async def list_policies(self, organization_id: str) -> List[SLAPolicy]:
        return await self._policy_repo.list_by_organization(organization_id)


class SLATrackerService:
    """
    Service for tracker queries and mutations.

    A ticket without a tracker has no SLA: every method returns None
    for it instead of raising.
    """

    def __init__(
        self,
        tracker_repository: ISLATrackerRepository,
        calendar_provider: IBusinessCalendarProvider,
        status_cache: Optional[ISLAStatusCache] = None,
        clock: Clock = utc_now
    ):
        self._tracker_repo = tracker_repository
        self._calendar_provider = calendar_provider
        self._cache = status_cache
        self._clock = clock

    async def get_tracker(self, ticket_id: str) -> Optional[SLATracker]:
        return await self._tracker_repo.get(ticket_id)

    async def require_tracker(self, ticket_id: str) -> SLATracker:
        """
        Raises:
            ResourceNotFoundException: the ticket has no tracker
        """
        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None:
            raise ResourceNotFoundException("SLATracker", ticket_id)
        return tracker

    async def calendar_for(self, tracker: SLATracker) -> Optional[BusinessCalendar]:
        return await _calendar_for(self._calendar_provider, tracker.policy, tracker.organization_id)

    async def check_status(
        self,
        ticket_id: str,
        now: Optional[datetime] = None
    ) -> Optional[SLAStatus]:
        """
        Current SLA status of a ticket.

        Statuses evaluated at the current time are served from the cache;
        an explicit ``now`` always recomputes.
        """
        use_cache = now is None and self._cache is not None
        if use_cache:
            cached = self._cache.get(ticket_id)
            if cached is not None:
                return cached

        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None:
            return None

        calendar = await self.calendar_for(tracker)
        status = tracker.status(now or self._clock(), calendar)
        if use_cache and status is not None:
            self._cache.set(ticket_id, status)
        return status

    async def pause(self, ticket_id: str, now: Optional[datetime] = None) -> Optional[SLATracker]:
        """Suspend the clock; pausing twice is a no-op."""
        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None or not tracker.has_policy:
            return tracker

        was_paused = tracker.is_paused
        tracker.pause(now or self._clock())
        if not was_paused:
            await self._persist(tracker)
            logger.info("SLA paused", extra={"ticket_id": ticket_id})
        return tracker

    async def resume(self, ticket_id: str, now: Optional[datetime] = None) -> Optional[SLATracker]:
        """Restart the clock and push unmet due dates out by the pause."""
        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None or not tracker.is_paused:
            return tracker

        now = now or self._clock()
        tracker.resume(now, await self.calendar_for(tracker))
        await self._persist(tracker)

        period = tracker.pause_ledger.periods[-1]
        logger.info(
            "SLA resumed",
            extra={
                "ticket_id": ticket_id,
                "paused_minutes": round(period.duration_minutes(now), 2),
                "resolution_due_at": tracker.resolution_due_at.isoformat(),
            }
        )
        return tracker

    async def record_first_response(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        """Record the first agent response; ``at`` may backfill a past instant."""
        return await self._record(ticket_id, SLAClock.FIRST_RESPONSE, SLATracker.record_first_response, at)

    async def record_next_response(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        return await self._record(ticket_id, SLAClock.NEXT_RESPONSE, SLATracker.record_next_response, at)

    async def record_resolution(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        return await self._record(ticket_id, SLAClock.RESOLUTION, SLATracker.record_resolution, at)

    async def reset_next_response_window(
        self,
        ticket_id: str,
        now: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        """Restart the next-response clock after new customer input."""
        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None or not tracker.has_policy:
            return tracker
        if tracker.policy.next_response_hours is None:
            return tracker

        tracker.reset_next_response_window(now or self._clock(), await self.calendar_for(tracker))
        await self._persist(tracker)
        logger.info(
            "Next-response window reset",
            extra={
                "ticket_id": ticket_id,
                "next_response_due_at": tracker.next_response_due_at.isoformat(),
            }
        )
        return tracker

    async def _record(
        self,
        ticket_id: str,
        clock: SLAClock,
        operation: Callable[..., SLATracker],
        at: Optional[datetime]
    ) -> Optional[SLATracker]:
        tracker = await self._tracker_repo.get(ticket_id)
        if tracker is None or not tracker.has_policy:
            return tracker

        flag = f"{clock.value}_met"
        before = getattr(tracker, flag)
        if clock == SLAClock.RESOLUTION and tracker.is_paused:
            # Resolving a paused ticket closes the pause first.
            operation(tracker, at or self._clock(), await self.calendar_for(tracker))
        else:
            operation(tracker, at or self._clock())
        after = getattr(tracker, flag)
        if before is None and after is not None:
            await self._persist(tracker)
            logger.info(
                "SLA outcome recorded",
                extra={"ticket_id": ticket_id, "clock": clock.value, "met": after}
            )
        return tracker

    async def _persist(self, tracker: SLATracker) -> None:
        await self._tracker_repo.save(tracker)
        if self._cache is not None:
            self._cache.invalidate_ticket(tracker.ticket_id)


class SLAApplicationService:
    """
    Entry point for ticket-lifecycle events.

    Classifies each event, applies it to the tracker and hands
    pause/resume/completion events to the notification collaborator.
    """

    def __init__(
        self,
        policy_resolver: SLAPolicyResolver,
        tracker_service: SLATrackerService,
        dispatcher: Optional[INotificationDispatcher] = None,
        clock: Clock = utc_now
    ):
        self._resolver = policy_resolver
        self._trackers = tracker_service
        self._dispatcher = dispatcher
        self._clock = clock

    async def handle_ticket_created(self, ticket: Ticket) -> Optional[SLATracker]:
        return await self._resolver.auto_assign(ticket)

    async def handle_status_change(
        self,
        ticket: Ticket,
        old_status: Optional[str],
        new_status: Optional[str],
        now: Optional[datetime] = None
    ) -> StatusChangeResult:
        """Pause, resume or complete the SLA clock for a status change."""
        transition = decide_transition(old_status, new_status)
        if transition == SLATransition.NONE:
            return StatusChangeResult(
                success=True, message="Status change does not affect SLA"
            )

        now = ensure_utc(now) if now else self._clock()
        try:
            if transition == SLATransition.PAUSE:
                tracker = await self._trackers.pause(ticket.id, now)
                event_action = SLAEventAction.PAUSED
            elif transition == SLATransition.RESUME:
                tracker = await self._trackers.resume(ticket.id, now)
                event_action = SLAEventAction.RESUMED
            else:
                tracker = await self._trackers.record_resolution(ticket.id, now)
                event_action = SLAEventAction.COMPLETED
        except ApplicationException as e:
            event_logger = get_context_logger(
                __name__, ticket_id=ticket.id, organization_id=ticket.organization_id
            )
            event_logger.error(
                "SLA status change failed",
                extra={"transition": transition.value, "error": e.message}
            )
            return StatusChangeResult(
                success=False,
                action=transition.value,
                message="SLA status change failed",
                error=e.message,
            )

        if tracker is None or not tracker.has_policy:
            return StatusChangeResult(success=True, message="No SLA applies to ticket")

        await self._notify(NotificationEvent(ticket_id=ticket.id, action=event_action, occurred_at=now))
        return StatusChangeResult(
            success=True,
            action=transition.value,
            message=f"SLA {transition.value} applied",
        )

    async def handle_priority_change(
        self,
        ticket: Ticket,
        old_priority_id: Optional[str],
        new_priority_id: Optional[str]
    ) -> StatusChangeResult:
        """Reassign the policy for the new priority, measured from creation."""
        if old_priority_id == new_priority_id:
            return StatusChangeResult(success=True, message="Priority unchanged")

        ticket.priority_id = new_priority_id
        try:
            policy = await self._resolver.resolve(
                ticket.organization_id, new_priority_id, ticket.priority_name
            )
            if policy is None:
                return StatusChangeResult(
                    success=True, message="No SLA policy for new priority"
                )
            await self._resolver.assign(ticket, policy)
        except ApplicationException as e:
            event_logger = get_context_logger(
                __name__, ticket_id=ticket.id, organization_id=ticket.organization_id
            )
            event_logger.error(
                "SLA reassignment failed",
                extra={"priority_id": new_priority_id, "error": e.message}
            )
            return StatusChangeResult(
                success=False, action="reassign", message="SLA reassignment failed", error=e.message
            )

        return StatusChangeResult(
            success=True, action="reassign", message=f"SLA policy {policy.id} assigned"
        )

    async def handle_customer_reply(
        self,
        ticket_id: str,
        now: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        return await self._trackers.reset_next_response_window(ticket_id, now)

    async def handle_agent_reply(
        self,
        ticket_id: str,
        at: Optional[datetime] = None
    ) -> Optional[SLATracker]:
        """First agent reply settles first response; later ones settle next response."""
        tracker = await self._trackers.get_tracker(ticket_id)
        if tracker is None or not tracker.has_policy:
            return tracker
        if tracker.first_response_met is None:
            return await self._trackers.record_first_response(ticket_id, at)
        return await self._trackers.record_next_response(ticket_id, at)

    async def _notify(self, event: NotificationEvent) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.dispatch(event)
        except ApplicationException as e:
            logger.warning(
                "SLA event notification failed",
                extra={"ticket_id": event.ticket_id, "action": event.action.value, "error": e.message}
            )


class EscalationEngine:
    """
    Periodic escalation over open trackers.

    Levels are re-evaluated every scan; only the highest matching level's
    actions fire. A failing tracker is logged and counted, never fatal.
    """

    def __init__(
        self,
        config_provider: ISLAConfigProvider,
        calendar_provider: IBusinessCalendarProvider,
        dispatcher: INotificationDispatcher,
        tracker_repository: Optional[ISLATrackerRepository] = None,
        clock: Clock = utc_now
    ):
        self._config_provider = config_provider
        self._calendar_provider = calendar_provider
        self._dispatcher = dispatcher
        self._tracker_repo = tracker_repository
        self._clock = clock

    def determine_level(self, percentage: float) -> Tuple[int, List[EscalationAction]]:
        """Map a consumed percentage to (level, actions); level 0 means none."""
        matched = self._config_provider.get_config().level_for(percentage)
        if matched is None:
            return 0, []
        return matched.level, list(matched.actions)

    async def scan(
        self,
        trackers: Iterable[SLATracker],
        batch_limit: int,
        now: Optional[datetime] = None,
        deadline: Optional[float] = None
    ) -> ScanResult:
        """
        Evaluate up to ``batch_limit`` unresolved trackers.

        Args:
            trackers: Candidate trackers; resolved ones are ignored
            batch_limit: Maximum unresolved trackers to look at
            now: Evaluation instant (defaults to the clock)
            deadline: ``time.monotonic()`` value after which the scan stops

        Returns:
            ScanResult with processed/escalated/errors/skipped counts
        """
        now = ensure_utc(now) if now else self._clock()
        result = ScanResult()
        calendars: Dict[str, Optional[BusinessCalendar]] = {}
        seen = 0

        for tracker in trackers:
            if tracker.is_resolved:
                continue
            if seen >= batch_limit:
                break
            if deadline is not None and time.monotonic() >= deadline:
                result.timed_out = True
                logger.warning(
                    "Escalation scan hit its deadline",
                    extra={"processed": result.processed}
                )
                break

            seen += 1
            result.processed += 1
            try:
                if not tracker.has_policy:
                    result.skipped += 1
                    continue

                if await self._evaluate(tracker, now, calendars):
                    result.escalated += 1
            except Exception as e:
                result.errors += 1
                result.error_messages.append(f"{tracker.ticket_id}: {e}")
                logger.error(
                    "Escalation failed for tracker",
                    extra={"ticket_id": tracker.ticket_id, "error": str(e)}
                )

            # Yield between trackers so callers can enforce a timeout.
            await asyncio.sleep(0)

        logger.info(
            "Escalation scan finished",
            extra={
                "processed": result.processed,
                "escalated": result.escalated,
                "errors": result.errors,
                "skipped": result.skipped,
            }
        )
        return result

    async def run_scan(
        self,
        batch_limit: int,
        timeout_seconds: Optional[float] = None
    ) -> ScanResult:
        """Load active trackers and scan them within ``timeout_seconds``."""
        if self._tracker_repo is None:
            raise ApplicationException("Escalation engine has no tracker repository")

        deadline = time.monotonic() + timeout_seconds if timeout_seconds else None
        with log_latency(logger, "escalation_scan", batch_limit=batch_limit):
            trackers = await self._tracker_repo.list_active(limit=batch_limit)
            return await self.scan(trackers, batch_limit, deadline=deadline)

    async def _evaluate(
        self,
        tracker: SLATracker,
        now: datetime,
        calendars: Dict[str, Optional[BusinessCalendar]]
    ) -> bool:
        calendar = None
        if tracker.policy.business_hours_only:
            if tracker.organization_id not in calendars:
                calendars[tracker.organization_id] = await self._calendar_provider.get_calendar(
                    tracker.organization_id
                )
            calendar = calendars[tracker.organization_id]

        percentage = tracker.consumed_percentage(now, calendar)
        level, actions = self.determine_level(percentage)
        if level == 0:
            return False

        for action in actions:
            await self._dispatcher.dispatch(NotificationEvent(
                ticket_id=tracker.ticket_id,
                action=action,
                level=level,
                percentage=percentage,
                occurred_at=now,
            ))

        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": tracker.ticket_id,
                "level": level,
                "percentage": round(percentage, 2),
                "actions": [a.value for a in actions],
            }
        )
        return True


class SLAReportingService:
    """Service for SLA compliance reporting."""

    def __init__(self, tracker_repository: ISLATrackerRepository):
        self._tracker_repo = tracker_repository

    async def summarize(self, organization_id: Optional[str] = None) -> ComplianceSummary:
        return compliance_summary(await self._tracker_repo.list_all(organization_id))


def compliance_summary(trackers: Iterable[SLATracker]) -> ComplianceSummary:
    """
    Count met/missed outcomes across trackers.

    Compliance is 100% while nothing has been measured.
    """
    summary = ComplianceSummary()
    for tracker in trackers:
        if not tracker.has_policy:
            continue
        summary.total_tickets += 1
        if tracker.first_response_met is True:
            summary.first_response_met += 1
        elif tracker.first_response_met is False:
            summary.first_response_missed += 1
        if tracker.resolution_met is True:
            summary.resolution_met += 1
        elif tracker.resolution_met is False:
            summary.resolution_missed += 1

    summary.first_response_compliance = _rate(
        summary.first_response_met, summary.first_response_missed
    )
    summary.resolution_compliance = _rate(summary.resolution_met, summary.resolution_missed)
    return summary


def _rate(met: int, missed: int) -> float:
    measured = met + missed
    if measured == 0:
        return 100.0
    return round(met / measured * 100, 2)
