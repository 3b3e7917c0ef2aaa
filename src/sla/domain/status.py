"""
Status Transition Classifier
============================

Maps free-text ticket status names onto StatusCategory once, at the
boundary, and decides what a status change does to the SLA clock.
"""

from typing import Optional

from src.config import (
    IN_PROGRESS_STATUS_KEYWORDS,
    PENDING_STATUS_KEYWORDS,
    RESOLVED_STATUS_KEYWORDS,
    SLATransition,
    StatusCategory,
)


def _normalize(status_name: Optional[str]) -> str:
    return (status_name or "").strip().lower()


def is_pending_status(status_name: Optional[str]) -> bool:
    text = _normalize(status_name)
    return bool(text) and any(k in text for k in PENDING_STATUS_KEYWORDS)


def is_resolved_status(status_name: Optional[str]) -> bool:
    text = _normalize(status_name)
    return bool(text) and any(k in text for k in RESOLVED_STATUS_KEYWORDS)


def is_in_progress_status(status_name: Optional[str]) -> bool:
    text = _normalize(status_name)
    if not text or is_resolved_status(text):
        return False
    return any(k in text for k in IN_PROGRESS_STATUS_KEYWORDS)


def classify(status_name: Optional[str]) -> StatusCategory:
    """Case-insensitive keyword classification of a status name."""
    if is_pending_status(status_name):
        return StatusCategory.PENDING
    if is_resolved_status(status_name):
        return StatusCategory.RESOLVED
    if is_in_progress_status(status_name):
        return StatusCategory.IN_PROGRESS
    return StatusCategory.OTHER


def decide_transition(old_status: Optional[str], new_status: Optional[str]) -> SLATransition:
    """
    Decide the SLA effect of moving from ``old_status`` to ``new_status``.

    Pause wins over Resume, which wins over Complete, when a status name
    matches more than one keyword family.
    """
    if is_pending_status(new_status) and not is_pending_status(old_status):
        return SLATransition.PAUSE
    if is_in_progress_status(new_status) and is_pending_status(old_status):
        return SLATransition.RESUME
    if is_resolved_status(new_status) and not is_resolved_status(old_status):
        return SLATransition.COMPLETE
    return SLATransition.NONE
