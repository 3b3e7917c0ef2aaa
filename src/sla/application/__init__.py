"""
SLA Application Layer
======================

Application layer for the SLA engine.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for the persistence and notification boundary

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.sla.application.dto import (
    BusinessCalendarRecord,
    ComplianceSummary,
    HolidayRecord,
    PausePeriodRecord,
    ScanResult,
    SLAPolicyRecord,
    SLASeedData,
    SLATrackerRecord,
    StatusChangeResult,
    TicketRecord,
    WeeklyWindowRecord,
)
from src.sla.application.services import (
    EscalationEngine,
    IBusinessCalendarProvider,
    INotificationDispatcher,
    ISLAConfigProvider,
    ISLAPolicyRepository,
    ISLAStatusCache,
    ISLATrackerRepository,
    SLAApplicationService,
    SLAPolicyResolver,
    SLAReportingService,
    SLATrackerService,
    compliance_summary,
)

__all__ = [
    # DTOs
    "TicketRecord",
    "SLAPolicyRecord",
    "WeeklyWindowRecord",
    "HolidayRecord",
    "BusinessCalendarRecord",
    "PausePeriodRecord",
    "SLATrackerRecord",
    "ScanResult",
    "StatusChangeResult",
    "ComplianceSummary",
    "SLASeedData",
    # Services
    "SLAPolicyResolver",
    "SLATrackerService",
    "SLAApplicationService",
    "EscalationEngine",
    "SLAReportingService",
    "compliance_summary",
    # Interfaces
    "ISLAPolicyRepository",
    "ISLATrackerRepository",
    "IBusinessCalendarProvider",
    "ISLAConfigProvider",
    "INotificationDispatcher",
    "ISLAStatusCache",
]
