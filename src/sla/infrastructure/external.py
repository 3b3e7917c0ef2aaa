"""
SLA External Service Integrations
==================================

External services for the SLA engine:
- Webhook notification dispatcher
- YAML config file watcher
- APScheduler for the periodic escalation scan
"""

import asyncio
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from src.core import ApplicationException, ConfigurationException, NotificationException
from src.shared.infrastructure.logging import get_logger
from src.sla.application import INotificationDispatcher, ISLAConfigProvider, SLASeedData
from src.sla.domain import NotificationEvent, SLAConfig

logger = get_logger(__name__)

_SCAN_JOB_ID = "sla_escalation_scan"

ReloadListener = Callable[[SLAConfig, SLASeedData], None]


def load_config_file(path: Path) -> Tuple[SLAConfig, SLASeedData]:
    """
    Load and parse the YAML config file.

    A missing file yields the default escalation levels and no seed data.

    Raises:
        ConfigurationException: the file is not valid YAML or fails validation
    """
    if not path.exists():
        logger.warning(f"SLA config file not found: {path}, using defaults")
        return SLAConfig(), SLASeedData()

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        config, seed = SLAConfig(**data), SLASeedData(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationException(
            f"Invalid SLA config file: {path}", {"error": str(e)}
        ) from e

    _validate_seed(seed, path)
    return config, seed


def _validate_seed(seed: SLASeedData, path: Path) -> None:
    """Build every seeded calendar once so a bad one fails the load, not a later lookup."""
    for record in seed.calendars:
        if not record.organization_id:
            raise ConfigurationException(
                f"Invalid SLA config file: {path}",
                {"error": "calendars entries need an organization_id"}
            )
    records = list(seed.calendars)
    if seed.default_calendar is not None:
        records.append(seed.default_calendar)
    for record in records:
        try:
            record.to_domain()
        except ConfigurationException as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {path}",
                {"error": e.details.get("error", e.message)}
            ) from e


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Config file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the worker. A failed reload keeps the previous
    configuration. Listeners registered with ``add_reload_listener`` get
    the new config and seed data after every successful reload.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._seed: SLASeedData = SLASeedData()
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None
        self._listeners: List[ReloadListener] = []

    def add_reload_listener(self, listener: ReloadListener) -> None:
        self._listeners.append(listener)

    def load(self, path: Path) -> SLAConfig:
        """Initial configuration load."""
        self._path = path
        self._config, self._seed = load_config_file(path)
        return self._config

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config, new_seed = load_config_file(self._path)
        except ConfigurationException as e:
            logger.error(
                "Failed to reload SLA config, keeping previous",
                extra={"error": e.details.get("error", e.message)}
            )
            return False

        with self._lock:
            self._config = new_config
            self._seed = new_seed

        applied = True
        for listener in self._listeners:
            try:
                listener(new_config, new_seed)
            except ApplicationException as e:
                logger.error(
                    "Failed to apply reloaded SLA config",
                    extra={"error": e.message},
                    exc_info=True
                )
                applied = False
        if not applied:
            return False

        logger.info(
            "SLA configuration reloaded successfully",
            extra={
                "escalation_levels": len(new_config.escalation_levels),
                "calendars": len(new_seed.calendars),
                "policies": len(new_seed.policies),
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if the file doesn't exist or the platform cannot
        provide file events.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Config file doesn't exist, skipping file watch: {self._path}. "
                "Using default SLA configuration."
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching config file: {self._path}")
        except OSError as e:
            logger.warning(
                f"File watching not available, using static config: {e}"
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> SLAConfig:
        return self.config

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    @property
    def seed(self) -> SLASeedData:
        """Calendars and policies declared alongside the escalation levels."""
        with self._lock:
            return self._seed


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "webhook"
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit breaker half-open", extra={"breaker": self.name})
        return self._state

    def allow_request(self) -> bool:
        """Check if request should be allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record successful request."""
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker closed", extra={"breaker": self.name})
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record failed request."""
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "breaker": self.name,
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationDispatcher(INotificationDispatcher):
    """
    Webhook client with circuit breaker and retry logic.

    POSTs each event as ``{ticketId, action, level?, percentage?, occurredAt}``
    with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._url = webhook_url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff = backoff_seconds
        self._http_client = http_client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            name="sla_webhook"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def dispatch(self, event: NotificationEvent) -> None:
        """
        Send an event to the webhook.

        Raises:
            NotificationException: circuit open or every attempt failed
        """
        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"ticket_id": event.ticket_id}
            )
            raise NotificationException("webhook circuit breaker open")

        payload = event.to_dict()
        last_error = "no attempt made"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._url, json=payload)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "SLA notification sent",
                        extra={"ticket_id": event.ticket_id, "action": payload["action"]}
                    )
                    return

                last_error = f"status {response.status_code}"
                logger.warning(
                    "Webhook returned non-2xx",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )

            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "SLA notification failed",
                    extra={
                        "error": last_error,
                        "attempt": attempt + 1,
                        "ticket_id": event.ticket_id
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationException(f"webhook delivery failed: {last_error}")

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class LoggingNotificationDispatcher(INotificationDispatcher):
    """Dispatcher used when no webhook is configured: events are only logged."""

    async def dispatch(self, event: NotificationEvent) -> None:
        payload: Dict[str, Any] = event.to_dict()
        logger.info("SLA event", extra={"event": payload, "ticket_id": event.ticket_id})

    async def close(self) -> None:
        return None


class SLAScheduler:
    """
    Wrapper for APScheduler running the periodic escalation scan.

    Manages the lifecycle of the scheduler and jobs. At most one scan runs
    at a time.
    """

    def __init__(self, interval_seconds: int = 300, run_on_start: bool = True):
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        job_options: Dict[str, Any] = {}
        if self.run_on_start:
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=_SCAN_JOB_ID,
            name="SLA Escalation Scan",
            misfire_grace_time=min(60, self.interval_seconds),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **job_options
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds, "run_on_start": self.run_on_start}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

    @property
    def next_run_at(self) -> Optional[datetime]:
        """When the escalation scan fires next, if scheduled."""
        if not self._running or self._scheduler is None:
            return None
        job = self._scheduler.get_job(_SCAN_JOB_ID)
        return job.next_run_time if job else None
