"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="sla-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    sla_status_cache_ttl_seconds: int = Field(
        default=120,
        description="Seconds a computed SLA status may be reused (0 disables)",
        ge=0,
        le=900
    )

    # ========== Escalation Scan ==========
    escalation_scan_interval_seconds: int = Field(
        default=300,
        description="Seconds between escalation scans",
        ge=10
    )
    escalation_batch_limit: int = Field(
        default=50,
        description="Max trackers evaluated per scan",
        ge=1
    )
    escalation_scan_timeout_seconds: float = Field(
        default=120.0,
        description="Overall deadline for a single scan",
        gt=0
    )
    escalation_scan_on_start: bool = Field(
        default=True,
        description="Run the first scan at startup instead of after one interval"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving escalation/pause/resume events"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for webhook calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class StatusCategory(str, Enum):
    """Coarse ticket status buckets that drive the SLA clock."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    OTHER = "other"


class SLATransition(str, Enum):
    """Effect of a status change on the SLA clock."""
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    NONE = "none"


class SLAClock(str, Enum):
    """Independent SLA clocks tracked per ticket."""
    FIRST_RESPONSE = "first_response"
    NEXT_RESPONSE = "next_response"
    RESOLUTION = "resolution"


class EscalationAction(str, Enum):
    """Actions handed to collaborators when a ticket escalates."""
    NOTIFY_AGENT = "notify_agent"
    NOTIFY_MANAGER = "notify_manager"
    REASSIGN = "reassign"
    INCREASE_PRIORITY = "increase_priority"


class SLAEventAction(str, Enum):
    """Non-escalation lifecycle events sent to the notification collaborator."""
    PAUSED = "sla_paused"
    RESUMED = "sla_resumed"
    COMPLETED = "sla_completed"


# ========== Defaults ==========

PAUSED_REMAINING_MINUTES = 999999

PENDING_STATUS_KEYWORDS = (
    "pending",
    "awaiting",
    "waiting",
    "on hold",
    "customer response",
    "suspended",
    "deferred",
)
IN_PROGRESS_STATUS_KEYWORDS = (
    "open",
    "in progress",
    "active",
    "assigned",
    "processing",
    "responded",
)
RESOLVED_STATUS_KEYWORDS = ("resolved", "closed")

DEFAULT_ESCALATION_LEVELS = [
    {"level": 1, "threshold_percent": 75, "actions": [EscalationAction.NOTIFY_AGENT]},
    {"level": 2, "threshold_percent": 90, "actions": [
        EscalationAction.NOTIFY_AGENT, EscalationAction.NOTIFY_MANAGER
    ]},
    {"level": 3, "threshold_percent": 100, "actions": [
        EscalationAction.NOTIFY_AGENT, EscalationAction.NOTIFY_MANAGER,
        EscalationAction.REASSIGN
    ]},
    {"level": 4, "threshold_percent": 120, "actions": [
        EscalationAction.NOTIFY_AGENT, EscalationAction.NOTIFY_MANAGER,
        EscalationAction.REASSIGN, EscalationAction.INCREASE_PRIORITY
    ]},
]
