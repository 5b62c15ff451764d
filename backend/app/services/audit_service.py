# Overview: Service-layer operations for the region access audit trail.

"""
Append-only audit trail for region access control.

WHY: Every grant, revoke, approve, reject and access decision is recorded
for compliance review. Events are never updated; the only deletion path is
an Admin purge of events older than a cutoff.

Mutating services call log_event(..., commit=False) so that the audit row
lands in the same transaction as the change it describes.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
from app.time_utils import utcnow


SEVERITIES = ("info", "warning", "error", "critical")


def log_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    *,
    region: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    severity: str = "info",
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> AuditEvent:
    """
    Append an audit event.

    event_type examples:
    - REGION_ACCESS_GRANTED / REGION_ACCESS_DENIED
    - REGION_ASSIGNED / REGION_REVOKED
    - TEMPORARY_ACCESS_GRANTED / TEMPORARY_ACCESS_EXTENDED / TEMPORARY_ACCESS_REVOKED
    - REGION_REQUEST_CREATED / _APPROVED / _REJECTED / _CANCELLED / _DELETED
    - PERMISSION_DENIED
    - USER_LOGIN / USER_LOGOUT
    - AUDIT_PURGED
    """
    if severity not in SEVERITIES:
        severity = "info"

    event = AuditEvent(
        user_id=user_id,
        event_type=event_type,
        severity=severity,
        region=region,
        action=action,
        success=success,
        reason=reason,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    if commit:
        db.session.commit()

    return event


def _filtered_query(
    *,
    event_type: str | None = None,
    user_id: int | None = None,
    region: str | None = None,
    success: bool | None = None,
    severity: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    query = db.session.query(AuditEvent)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    if user_id is not None:
        query = query.filter(AuditEvent.user_id == user_id)
    if region:
        query = query.filter(AuditEvent.region == region)
    if success is not None:
        query = query.filter(AuditEvent.success == success)
    if severity:
        query = query.filter(AuditEvent.severity == severity)
    if start is not None:
        query = query.filter(AuditEvent.occurred_at >= start)
    if end is not None:
        query = query.filter(AuditEvent.occurred_at <= end)
    return query


def list_events(*, limit: int = 100, offset: int = 0, **filters) -> list[AuditEvent]:
    """Newest first."""
    return (
        _filtered_query(**filters)
        .order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_event_stats(**filters) -> dict:
    events = _filtered_query(**filters).all()

    by_type: dict[str, int] = {}
    by_region: dict[str, int] = {}
    by_user: dict[str, int] = {}
    successful = 0

    for event in events:
        by_type[event.event_type] = by_type.get(event.event_type, 0) + 1
        if event.region:
            by_region[event.region] = by_region.get(event.region, 0) + 1
        user_key = str(event.user_id) if event.user_id is not None else "anonymous"
        by_user[user_key] = by_user.get(user_key, 0) + 1
        if event.success:
            successful += 1

    return {
        "total_events": len(events),
        "successful_events": successful,
        "failed_events": len(events) - successful,
        "events_by_type": by_type,
        "events_by_region": by_region,
        "events_by_user": by_user,
    }


def purge_events(*, before: datetime, purged_by: int | None, source: str = "admin") -> int:
    """
    Bulk delete events older than `before`.

    The purge itself is recorded in the same transaction so the trail shows
    who cut it. purged_by is None for the unattended
    retention job (source="retention").
    """
    deleted = db.session.query(AuditEvent).filter(
        AuditEvent.occurred_at < before
    ).delete(synchronize_session=False)

    log_event(
        purged_by,
        "AUDIT_PURGED",
        True,
        severity="warning",
        action=f"Purged {deleted} audit events ({source})",
        details={"before": before.isoformat(), "deleted": deleted, "source": source},
        commit=False,
    )
    db.session.commit()
    return deleted
