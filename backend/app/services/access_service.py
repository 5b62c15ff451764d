# Overview: Service-layer region access evaluation; the single place region ALLOW/DENY is decided.

"""
Region Access Evaluator

Decides whether a user may act on a region at a given instant, e.g. before
placing a map annotation. Rules, first match wins:

1. No resolvable user -> DENY
2. Admin -> ALLOW (administrative override)
3. Region in effective regions (permanent U active temporary) -> ALLOW,
   flagged temporary only when no permanent grant covers the region
4. Otherwise -> DENY, naming the user's current effective regions

Every decision is appended to the audit trail. If the grant store cannot
be read the evaluator fails closed: DENY, never ALLOW.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User
from . import audit_service, grant_service, permission_service
from app.time_utils import utcnow, to_naive_utc


REASON_ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
REASON_PERMANENT_GRANT = "PERMANENT_GRANT"
REASON_TEMPORARY_GRANT = "TEMPORARY_GRANT"
REASON_NOT_ASSIGNED = "REGION_NOT_ASSIGNED"
REASON_NO_IDENTITY = "NO_IDENTITY"
REASON_STORE_UNAVAILABLE = "GRANT_STORE_UNAVAILABLE"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    region: str
    reason: str
    temporary: bool = False
    effective_regions: tuple = ()
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "region": self.region,
            "reason": self.reason,
            "temporary": self.temporary,
            "effective_regions": list(self.effective_regions),
            "message": self.message,
        }


def _deny_message(region: str, effective: tuple[str, ...]) -> str:
    if not effective:
        return f"You don't have access to {region}. You have no assigned regions."
    return f"You don't have access to {region}. Your assigned regions: {', '.join(effective)}"


def _decide(user: User | None, region: str, now: datetime) -> AccessDecision:
    if user is None or not user.is_active:
        return AccessDecision(
            allowed=False,
            region=region,
            reason=REASON_NO_IDENTITY,
            message="Authentication required",
        )

    if permission_service.is_admin(user):
        return AccessDecision(
            allowed=True,
            region=region,
            reason=REASON_ADMIN_OVERRIDE,
            message="Admin access granted",
        )

    sources = grant_service.get_effective_region_sources(user.id, now)
    effective = tuple(sorted(sources.all))

    if region in sources.permanent:
        return AccessDecision(
            allowed=True,
            region=region,
            reason=REASON_PERMANENT_GRANT,
            effective_regions=effective,
            message=f"Access granted to {region}",
        )

    if region in sources.temporary:
        return AccessDecision(
            allowed=True,
            region=region,
            reason=REASON_TEMPORARY_GRANT,
            temporary=True,
            effective_regions=effective,
            message=f"Access granted to {region} (Temporary Access)",
        )

    return AccessDecision(
        allowed=False,
        region=region,
        reason=REASON_NOT_ASSIGNED,
        effective_regions=effective,
        message=_deny_message(region, effective),
    )


def evaluate_region_access(
    user: User | None,
    region: str,
    now: datetime | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AccessDecision:
    """
    Evaluate and audit a single region access check.

    Usage:
        decision = evaluate_region_access(g.current_user, "Delhi")
        if not decision.allowed:
            return jsonify(decision.to_dict()), 403
    """
    now = utcnow() if now is None else to_naive_utc(now)
    region = (region or "").strip()

    try:
        decision = _decide(user, region, now)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Grant store unavailable during region access check")
        decision = AccessDecision(
            allowed=False,
            region=region,
            reason=REASON_STORE_UNAVAILABLE,
            message="Unable to verify region access. Please try again.",
        )

    _record(user, decision, ip_address=ip_address, user_agent=user_agent)
    return decision


def _record(user: User | None, decision: AccessDecision, *, ip_address, user_agent) -> None:
    """Audit the decision; a failed audit write never changes the decision."""
    try:
        audit_service.log_event(
            user.id if user is not None else None,
            "REGION_ACCESS_GRANTED" if decision.allowed else "REGION_ACCESS_DENIED",
            decision.allowed,
            severity="info" if decision.allowed else "warning",
            region=decision.region or None,
            action="REGION_ACCESS_CHECK",
            reason=decision.reason,
            details={
                "temporary": decision.temporary,
                "effective_regions": list(decision.effective_regions),
                "role": user.role if user is not None else None,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record region access decision")
