"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for the SLA engine:
- Repositories: In-memory stores and the static calendar provider
- Cache: TTL cache for computed statuses
- External: External service integrations (webhook, config watcher, scheduler)
"""

from src.sla.infrastructure.cache import SLAStatusCache
from src.sla.infrastructure.external import (
    CircuitBreaker,
    LoggingNotificationDispatcher,
    SLAConfigManager,
    SLAScheduler,
    WebhookNotificationDispatcher,
    load_config_file,
)
from src.sla.infrastructure.repositories import (
    InMemorySLAPolicyRepository,
    InMemorySLATrackerRepository,
    StaticCalendarProvider,
)

__all__ = [
    "SLAStatusCache",
    "CircuitBreaker",
    "LoggingNotificationDispatcher",
    "SLAConfigManager",
    "SLAScheduler",
    "WebhookNotificationDispatcher",
    "load_config_file",
    "InMemorySLAPolicyRepository",
    "InMemorySLATrackerRepository",
    "StaticCalendarProvider",
]
