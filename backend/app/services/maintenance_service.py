# Overview: Service-layer operations for maintenance; encapsulates business logic and database work.

from __future__ import annotations

from datetime import timedelta

from . import audit_service, session_service
from app.time_utils import utcnow


def cleanup_audit_events(*, retention_days: int = 365) -> int:
    """
    Delete audit events older than retention_days.

    Goes through the same purge path as the Admin endpoint, so the cut is
    recorded as AUDIT_PURGED with no acting user and source "retention".
    """
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")

    cutoff = utcnow() - timedelta(days=retention_days)
    return audit_service.purge_events(before=cutoff, purged_by=None, source="retention")


def cleanup_sessions(*, retention_days: int = 30) -> int:
    return session_service.cleanup_expired_sessions(retention_days=retention_days)
