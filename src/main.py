"""
SLA Engine - Worker Entrypoint
==============================

Wires the SLA engine together and runs the periodic escalation scan.

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Calendar, deadlines, pause ledger, tracker, escalation levels
- Infrastructure: Repositories, config watcher, webhook, scheduler
"""

import asyncio
import signal
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional, Union

from src.config import Settings, get_settings
from src.core import ApplicationException
from src.shared.infrastructure.logging import get_context_logger, get_logger, setup_logging
from src.sla.application import (
    EscalationEngine,
    ScanResult,
    SLAApplicationService,
    SLAPolicyResolver,
    SLAReportingService,
    SLASeedData,
    SLATrackerService,
)
from src.sla.domain import SLAConfig
from src.sla.infrastructure import (
    InMemorySLAPolicyRepository,
    InMemorySLATrackerRepository,
    LoggingNotificationDispatcher,
    SLAConfigManager,
    SLAScheduler,
    SLAStatusCache,
    StaticCalendarProvider,
    WebhookNotificationDispatcher,
)

logger = get_logger(__name__)


@dataclass
class SLAEngine:
    """Service instances shared by the worker."""
    settings: Settings
    config_manager: SLAConfigManager
    status_cache: SLAStatusCache
    dispatcher: Union[WebhookNotificationDispatcher, LoggingNotificationDispatcher]
    policy_resolver: SLAPolicyResolver
    tracker_service: SLATrackerService
    application_service: SLAApplicationService
    escalation_engine: EscalationEngine
    reporting_service: SLAReportingService
    scheduler: Optional[SLAScheduler] = None

    async def scan_once(self) -> ScanResult:
        """One escalation pass, tagged with its own correlation id."""
        scan_logger = get_context_logger(__name__, correlation_id=str(uuid.uuid4()))
        try:
            result = await self.escalation_engine.run_scan(
                self.settings.escalation_batch_limit,
                self.settings.escalation_scan_timeout_seconds,
            )
        except ApplicationException as e:
            scan_logger.error("Escalation scan failed", extra={"error": e.message})
            return ScanResult(errors=1, error_messages=[e.message])

        self.status_cache.cleanup()
        scan_logger.info("Escalation scan completed", extra=result.model_dump())
        return result


def build_engine(settings: Settings) -> SLAEngine:
    """
    Create every service from settings and the YAML config file.

    Raises:
        ConfigurationException: the config file is invalid
    """
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    seed = config_manager.seed

    calendars = StaticCalendarProvider.from_records(seed.calendars, seed.default_calendar)
    policy_repo = InMemorySLAPolicyRepository(p.to_domain() for p in seed.policies)
    tracker_repo = InMemorySLATrackerRepository()
    status_cache = SLAStatusCache(ttl_seconds=settings.sla_status_cache_ttl_seconds)

    if settings.notification_webhook_url:
        dispatcher = WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    else:
        logger.info("Notification webhook not configured, logging SLA events only")
        dispatcher = LoggingNotificationDispatcher()

    def apply_seed(config: SLAConfig, seed: SLASeedData) -> None:
        # Escalation levels are read from the manager on every scan.
        calendars.load_records(seed.calendars, seed.default_calendar)
        policy_repo.replace_seeded(p.to_domain() for p in seed.policies)
        status_cache.clear()

    config_manager.add_reload_listener(apply_seed)

    resolver = SLAPolicyResolver(policy_repo, tracker_repo, calendars, status_cache)
    tracker_service = SLATrackerService(tracker_repo, calendars, status_cache)

    return SLAEngine(
        settings=settings,
        config_manager=config_manager,
        status_cache=status_cache,
        dispatcher=dispatcher,
        policy_resolver=resolver,
        tracker_service=tracker_service,
        application_service=SLAApplicationService(resolver, tracker_service, dispatcher),
        escalation_engine=EscalationEngine(
            config_manager, calendars, dispatcher, tracker_repository=tracker_repo
        ),
        reporting_service=SLAReportingService(tracker_repo),
    )


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncGenerator[SLAEngine, None]:
    """
    Worker lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Load SLA configuration and start watching it
    3. Build services
    4. Start the escalation scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Stop the config watcher
    3. Close the notification client
    """
    settings = settings or get_settings()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    engine = build_engine(settings)
    engine.config_manager.start_watching()

    engine.scheduler = SLAScheduler(
        interval_seconds=settings.escalation_scan_interval_seconds,
        run_on_start=settings.escalation_scan_on_start,
    )
    await engine.scheduler.start(engine.scan_once)

    logger.info("SLA engine started successfully")

    try:
        yield engine
    finally:
        # === SHUTDOWN ===
        logger.info("Shutting down SLA engine")
        await engine.scheduler.stop()
        engine.config_manager.stop_watching()
        await engine.dispatcher.close()
        logger.info("SLA engine shutdown complete")


async def run() -> None:
    """Run the worker until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this event loop", extra={"signal": sig.name})

    async with lifespan():
        await stop.wait()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
