"""
SLA Status Cache
================

Short-lived cache of computed SLA statuses.

Percentages change with time, so entries expire after a few minutes and
are dropped whenever the tracker changes.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from src.shared.infrastructure.logging import get_logger
from src.sla.application import ISLAStatusCache
from src.sla.domain import SLAStatus

logger = get_logger(__name__)


@dataclass
class _Entry:
    status: SLAStatus
    expires_at: float


class SLAStatusCache(ISLAStatusCache):
    """Thread-safe TTL cache keyed by ticket id. A TTL of 0 disables it."""

    def __init__(
        self,
        ttl_seconds: float = 120,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, ticket_id: str) -> Optional[SLAStatus]:
        with self._lock:
            entry = self._entries.get(ticket_id)
            if entry is None or entry.expires_at <= self._clock():
                if entry is not None:
                    del self._entries[ticket_id]
                self._misses += 1
                return None
            self._hits += 1
            return entry.status

    def set(self, ticket_id: str, status: SLAStatus) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[ticket_id] = _Entry(status, self._clock() + self.ttl_seconds)

    def invalidate_ticket(self, ticket_id: str) -> None:
        with self._lock:
            self._entries.pop(ticket_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("SLA status cache cleaned", extra={"removed": len(expired)})
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
            }
