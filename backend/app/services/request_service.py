# Overview: Service-layer operations for region access requests; review workflow with atomic approval.

"""
Region Access Requests

Lifecycle:
    pending -> approved   (Manager/Admin; creates permanent grants)
    pending -> rejected   (Manager/Admin)
    pending -> cancelled  (requester only)

Approval is all-or-nothing: the status change, every resulting permanent
grant and the audit events are flushed in one transaction. If anything
fails, the session is rolled back and the request stays pending with no
grants created.
"""

from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User, RegionAccessRequest, UserRegion
from ..validation import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    optional_text,
    require_region_list,
    require_text,
)
from . import audit_service, grant_service, permission_service, region_service
from app.time_utils import utcnow


DEFAULT_MIN_REASON_LENGTH = 10


def _min_reason_length() -> int:
    if has_app_context():
        return int(current_app.config.get("REGION_REQUEST_MIN_REASON_LENGTH", DEFAULT_MIN_REASON_LENGTH))
    return DEFAULT_MIN_REASON_LENGTH


def _get_request(request_id: int) -> RegionAccessRequest:
    request_row = db.session.get(RegionAccessRequest, request_id)
    if not request_row:
        raise NotFoundError("Region access request not found")
    return request_row


def _get_reviewer(reviewer_id: int) -> User:
    reviewer = db.session.get(User, reviewer_id)
    if not permission_service.is_reviewer(reviewer) or not reviewer.is_active:
        raise AuthorizationError("Only Admin or Manager can review region access requests")
    return reviewer


def _require_pending(request_row: RegionAccessRequest) -> None:
    if request_row.status != RegionAccessRequest.STATUS_PENDING:
        raise InvalidStateError(f"Request is already {request_row.status}")


def create_access_request(user_id: int, regions, reason) -> RegionAccessRequest:
    """
    Submit a request for permanent access to one or more regions.

    Validation (nothing is written on failure):
    - reason at least REGION_REQUEST_MIN_REASON_LENGTH characters after trimming
    - at least one region, no duplicates, every region known and active
    - no region the user already holds permanently
    - no region already named in one of the user's pending requests
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    names = require_region_list(regions, "regions")
    reason = require_text(reason, "reason", min_length=_min_reason_length(), max_length=2000)
    region_rows = region_service.resolve_regions(names)

    held = {
        grant.region_id
        for grant in db.session.query(UserRegion).filter_by(user_id=user.id).all()
    }
    already = [row.name for row in region_rows if row.id in held]
    if already:
        raise ValidationError(f"You already have access to: {', '.join(already)}", "regions")

    pending = [name for name in names if has_pending_request_for_region(user.id, name)]
    if pending:
        raise ValidationError(f"You already have a pending request for: {', '.join(pending)}", "regions")

    now = utcnow()
    request_row = RegionAccessRequest(
        user_id=user.id,
        requested_regions=names,
        reason=reason,
        status=RegionAccessRequest.STATUS_PENDING,
        created_at=now,
        updated_at=now,
    )

    try:
        db.session.add(request_row)
        db.session.flush()
        audit_service.log_event(
            user.id,
            "REGION_REQUEST_CREATED",
            True,
            action=f"Requested access to {', '.join(names)}",
            reason=reason,
            details={"request_id": request_row.id, "requested_regions": names},
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return request_row


def approve_request(request_id: int, reviewer_id: int, notes=None) -> RegionAccessRequest:
    """
    Approve a pending request and create a permanent grant per region.

    Regions the user gained in the meantime are skipped (grants are
    idempotent); a region deactivated since submission fails the whole
    approval.
    """
    reviewer = _get_reviewer(reviewer_id)
    notes = optional_text(notes, "reviewNotes", max_length=2000)

    try:
        request_row = _get_request(request_id)
        _require_pending(request_row)

        region_rows = region_service.resolve_regions(list(request_row.requested_regions or []))
        created = []
        for region_row in region_rows:
            grant = grant_service.stage_permanent_grant(
                request_row.user, region_row, reviewer.id, source=f"request:{request_row.id}"
            )
            if grant is not None:
                created.append(region_row.name)

        now = utcnow()
        request_row.status = RegionAccessRequest.STATUS_APPROVED
        request_row.reviewed_by_user_id = reviewer.id
        request_row.reviewed_at = now
        request_row.review_notes = notes
        request_row.updated_at = now

        audit_service.log_event(
            reviewer.id,
            "REGION_REQUEST_APPROVED",
            True,
            action=f"Approved region request for {request_row.user.username}",
            reason=notes,
            details={
                "request_id": request_row.id,
                "requested_regions": list(request_row.requested_regions),
                "granted_regions": created,
                "requested_by": request_row.user_id,
            },
            commit=False,
        )
        db.session.commit()
    except Exception:
        # All-or-nothing: no grant survives a failed approval
        db.session.rollback()
        raise
    return request_row


def reject_request(request_id: int, reviewer_id: int, notes=None) -> RegionAccessRequest:
    reviewer = _get_reviewer(reviewer_id)
    notes = optional_text(notes, "reviewNotes", max_length=2000)

    request_row = _get_request(request_id)
    _require_pending(request_row)

    now = utcnow()
    request_row.status = RegionAccessRequest.STATUS_REJECTED
    request_row.reviewed_by_user_id = reviewer.id
    request_row.reviewed_at = now
    request_row.review_notes = notes
    request_row.updated_at = now

    try:
        audit_service.log_event(
            reviewer.id,
            "REGION_REQUEST_REJECTED",
            True,
            severity="warning",
            action=f"Rejected region request for {request_row.user.username}",
            reason=notes,
            details={
                "request_id": request_row.id,
                "requested_regions": list(request_row.requested_regions),
                "requested_by": request_row.user_id,
            },
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return request_row


def cancel_request(request_id: int, user_id: int) -> RegionAccessRequest:
    """
    Withdraw a pending request. Only the requester may cancel.

    Someone else's request is reported as not found; a request that is no
    longer pending raises InvalidStateError and keeps its status.
    """
    request_row = _get_request(request_id)
    if request_row.user_id != user_id:
        raise NotFoundError("Region access request not found")
    _require_pending(request_row)

    request_row.status = RegionAccessRequest.STATUS_CANCELLED
    request_row.updated_at = utcnow()

    try:
        audit_service.log_event(
            user_id,
            "REGION_REQUEST_CANCELLED",
            True,
            action="Cancelled region access request",
            details={
                "request_id": request_row.id,
                "requested_regions": list(request_row.requested_regions),
            },
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return request_row


def delete_request(request_id: int, actor: User) -> None:
    """Admin only: remove a request row regardless of status."""
    if not permission_service.user_has_permission(actor, "DELETE_REGION_REQUESTS"):
        raise AuthorizationError("Only Admin can delete region access requests")

    request_row = _get_request(request_id)
    snapshot = {
        "request_id": request_row.id,
        "requested_regions": list(request_row.requested_regions),
        "requested_by": request_row.user_id,
        "status": request_row.status,
    }

    try:
        db.session.delete(request_row)
        audit_service.log_event(
            actor.id,
            "REGION_REQUEST_DELETED",
            True,
            severity="warning",
            action="Deleted region access request",
            details=snapshot,
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def get_request(request_id: int) -> RegionAccessRequest:
    return _get_request(request_id)


def list_requests(
    *,
    user_id: int | None = None,
    status: str | None = None,
    region: str | None = None,
) -> list[RegionAccessRequest]:
    """Newest first. Region filtering happens in Python because regions live in a JSON column."""
    if status and status not in RegionAccessRequest.STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(RegionAccessRequest.STATUSES)}", "status"
        )

    query = db.session.query(RegionAccessRequest)
    if user_id is not None:
        query = query.filter(RegionAccessRequest.user_id == user_id)
    if status:
        query = query.filter(RegionAccessRequest.status == status)

    rows = query.order_by(RegionAccessRequest.created_at.desc(), RegionAccessRequest.id.desc()).all()
    if region:
        rows = [row for row in rows if region in (row.requested_regions or [])]
    return rows


def get_request_stats(*, user_id: int | None = None) -> dict:
    rows = list_requests(user_id=user_id)

    by_status = {status: 0 for status in RegionAccessRequest.STATUSES}
    by_user: dict[str, int] = {}
    by_region: dict[str, int] = {}

    for row in rows:
        by_status[row.status] = by_status.get(row.status, 0) + 1
        username = row.user.username if row.user else str(row.user_id)
        by_user[username] = by_user.get(username, 0) + 1
        for name in row.requested_regions or []:
            by_region[name] = by_region.get(name, 0) + 1

    return {
        "total_requests": len(rows),
        "pending_requests": by_status[RegionAccessRequest.STATUS_PENDING],
        "approved_requests": by_status[RegionAccessRequest.STATUS_APPROVED],
        "rejected_requests": by_status[RegionAccessRequest.STATUS_REJECTED],
        "cancelled_requests": by_status[RegionAccessRequest.STATUS_CANCELLED],
        "requests_by_user": by_user,
        "requests_by_region": by_region,
    }


def has_pending_request_for_region(user_id: int, region: str) -> bool:
    return bool(list_requests(user_id=user_id, status=RegionAccessRequest.STATUS_PENDING, region=region))
