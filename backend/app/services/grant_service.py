# Overview: Service-layer operations for region grants; the durable source of truth for region access.

"""
Region Grant Store

WHY: One place owns permanent grants and temporary (time-boxed) grants.
The access evaluator and the effective-regions endpoint read from here;
admin tooling writes through here.

DESIGN PRINCIPLES:
- Effective regions are computed, never materialized. A temporary grant is
  active iff revoked_at IS NULL AND expires_at > now, evaluated at read
  time. Expiring or revoking a temporary grant cannot remove a permanent
  grant on the same region, and vice versa.
- Every mutation writes its audit event in the same transaction.
- Writes to a single temporary grant row are serialized with
  SELECT ... FOR UPDATE (last writer wins on expires_at).
- Database errors roll back and propagate; callers decide what to show.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User, Region, UserRegion, TemporaryRegionAccess
from ..validation import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    optional_text,
    require_future_datetime,
    require_region_list,
)
from . import audit_service, region_service
from .concurrency import lock_for_update, run_with_retry
from app.time_utils import utcnow, to_naive_utc


BULK_MODES = ("add", "replace", "remove")


@dataclass(frozen=True)
class EffectiveRegions:
    """Effective regions at one instant, split by the kind of grant behind them."""
    permanent: frozenset = field(default_factory=frozenset)
    temporary: frozenset = field(default_factory=frozenset)

    @property
    def all(self) -> frozenset:
        return self.permanent | self.temporary

    def is_temporary_only(self, region: str) -> bool:
        return region in self.temporary and region not in self.permanent


def _resolve_now(now: datetime | None) -> datetime:
    return utcnow() if now is None else to_naive_utc(now)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _active_temporary_filter(now: datetime):
    return db.and_(
        TemporaryRegionAccess.revoked_at.is_(None),
        TemporaryRegionAccess.expires_at > now,
    )


# =============================================================================
# EFFECTIVE REGIONS
# =============================================================================


def get_effective_region_sources(user_id: int, now: datetime | None = None) -> EffectiveRegions:
    """
    Permanent and currently-active temporary regions for a user.

    Deactivated catalog regions grant nothing.
    """
    now = _resolve_now(now)

    permanent_rows = (
        db.session.query(Region.name)
        .join(UserRegion, UserRegion.region_id == Region.id)
        .filter(UserRegion.user_id == user_id, Region.is_active.is_(True))
        .all()
    )
    temporary_rows = (
        db.session.query(Region.name)
        .join(TemporaryRegionAccess, TemporaryRegionAccess.region_id == Region.id)
        .filter(
            TemporaryRegionAccess.user_id == user_id,
            Region.is_active.is_(True),
            _active_temporary_filter(now),
        )
        .all()
    )

    return EffectiveRegions(
        permanent=frozenset(row[0] for row in permanent_rows),
        temporary=frozenset(row[0] for row in temporary_rows),
    )


def get_effective_regions(user_id: int, now: datetime | None = None) -> set[str]:
    """Union of permanent and active temporary regions at `now`."""
    return set(get_effective_region_sources(user_id, now).all)


# =============================================================================
# PERMANENT GRANTS
# =============================================================================


def list_permanent_grants(user_id: int) -> list[UserRegion]:
    return (
        db.session.query(UserRegion)
        .join(Region, UserRegion.region_id == Region.id)
        .filter(UserRegion.user_id == user_id)
        .order_by(Region.name.asc())
        .all()
    )


def stage_permanent_grant(user: User, region: Region, granted_by: int | None, *, source: str) -> UserRegion | None:
    """Stage a permanent grant; returns None when the user already holds it."""
    existing = db.session.query(UserRegion).filter_by(user_id=user.id, region_id=region.id).first()
    if existing:
        return None

    grant = UserRegion(user_id=user.id, region_id=region.id, granted_by_user_id=granted_by, granted_at=utcnow())
    db.session.add(grant)
    audit_service.log_event(
        granted_by,
        "REGION_ASSIGNED",
        True,
        region=region.name,
        action=f"Assigned {region.name} to {user.username}",
        details={"target_user_id": user.id, "source": source},
        commit=False,
    )
    return grant


def stage_permanent_revoke(user: User, region: Region, revoked_by: int | None, *, source: str) -> bool:
    grant = db.session.query(UserRegion).filter_by(user_id=user.id, region_id=region.id).first()
    if not grant:
        return False

    db.session.delete(grant)
    audit_service.log_event(
        revoked_by,
        "REGION_REVOKED",
        True,
        severity="warning",
        region=region.name,
        action=f"Revoked {region.name} from {user.username}",
        details={"target_user_id": user.id, "source": source},
        commit=False,
    )
    return True


def grant_permanent(user_id: int, region: str, granted_by: int | None) -> UserRegion:
    """
    Grant permanent access to a region.

    Idempotent: an existing grant is returned unchanged.
    """
    user = _get_user(user_id)
    region_row = region_service.get_region(region)

    try:
        grant = stage_permanent_grant(user, region_row, granted_by, source="direct")
        if grant is None:
            return db.session.query(UserRegion).filter_by(user_id=user.id, region_id=region_row.id).first()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return grant


def revoke_permanent(user_id: int, region: str, revoked_by: int | None) -> None:
    """
    Remove a permanent grant. Temporary grants on the same region are untouched.

    Raises NotFoundError when the user holds no permanent grant on the region.
    """
    user = _get_user(user_id)
    region_row = region_service.get_region(region)

    try:
        if not stage_permanent_revoke(user, region_row, revoked_by, source="direct"):
            raise NotFoundError(f"{user.username} has no permanent access to {region_row.name}")
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def bulk_assign_regions(
    user_ids: list[int],
    regions: list[str],
    granted_by: int | None,
    mode: str = "add",
) -> dict:
    """
    Apply one region set to many users in a single transaction.

    mode:
    - add: grant every listed region (existing grants kept)
    - replace: user ends up with exactly the listed permanent regions
    - remove: revoke every listed region the user holds
    """
    if mode not in BULK_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(BULK_MODES)}", "mode")
    if not user_ids:
        raise ValidationError("Select at least 1 user", "userIds")

    min_count = 0 if mode == "replace" else 1
    names = require_region_list(regions, "regions", min_count=min_count)
    region_rows = region_service.resolve_regions(names)
    users = [_get_user(user_id) for user_id in dict.fromkeys(user_ids)]

    added = 0
    removed = 0
    try:
        for user in users:
            if mode == "replace":
                wanted = {row.id for row in region_rows}
                for grant in list_permanent_grants(user.id):
                    if grant.region_id not in wanted:
                        stage_permanent_revoke(user, grant.region, granted_by, source=f"bulk:{mode}")
                        removed += 1

            for region_row in region_rows:
                if mode == "remove":
                    if stage_permanent_revoke(user, region_row, granted_by, source=f"bulk:{mode}"):
                        removed += 1
                elif stage_permanent_grant(user, region_row, granted_by, source=f"bulk:{mode}") is not None:
                    added += 1

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    return {
        "mode": mode,
        "users": len(users),
        "regions": names,
        "added": added,
        "removed": removed,
    }


# =============================================================================
# TEMPORARY GRANTS
# =============================================================================


def _get_temporary(grant_id: int, *, for_update: bool = False) -> TemporaryRegionAccess:
    query = db.session.query(TemporaryRegionAccess).filter_by(id=grant_id)
    if for_update:
        query = lock_for_update(query)
    grant = query.first()
    if not grant:
        raise NotFoundError("Temporary access not found")
    return grant


def grant_temporary(
    user_id: int,
    region: str,
    expires_at,
    granted_by: int,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> TemporaryRegionAccess:
    """
    Grant time-boxed access to a region.

    expires_at (datetime or ISO-8601 string) must be strictly in the future.
    A user who already holds a permanent grant, or an active temporary
    grant, on the region gets a ConflictError.
    """
    now = _resolve_now(now)
    expires = require_future_datetime(expires_at, "expiresAt", now=now)
    reason = optional_text(reason, "reason", max_length=2000)

    user = _get_user(user_id)
    region_row = region_service.get_region(region)

    permanent = db.session.query(UserRegion).filter_by(user_id=user.id, region_id=region_row.id).first()
    if permanent:
        raise ConflictError(
            f"{user.username} already has permanent access to {region_row.name}. "
            "Remove permanent access first to grant temporary access."
        )

    active = db.session.query(TemporaryRegionAccess).filter(
        TemporaryRegionAccess.user_id == user.id,
        TemporaryRegionAccess.region_id == region_row.id,
        _active_temporary_filter(now),
    ).first()
    if active:
        raise ConflictError(f"{user.username} already has active temporary access to {region_row.name}")

    grant = TemporaryRegionAccess(
        user_id=user.id,
        region_id=region_row.id,
        granted_by_user_id=granted_by,
        granted_at=now,
        expires_at=expires,
        reason=reason,
    )

    try:
        db.session.add(grant)
        db.session.flush()
        audit_service.log_event(
            granted_by,
            "TEMPORARY_ACCESS_GRANTED",
            True,
            region=region_row.name,
            action=f"Granted temporary access to {region_row.name} for {user.username}",
            reason=reason,
            details={
                "grant_id": grant.id,
                "target_user_id": user.id,
                "expires_at": expires.isoformat(),
            },
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return grant


def extend_temporary(
    grant_id: int,
    new_expires_at,
    extended_by: int | None = None,
    *,
    now: datetime | None = None,
) -> TemporaryRegionAccess:
    """
    Move the expiry of an active temporary grant.

    The row is locked for the read-modify-write so concurrent extends
    serialize; the last one to commit wins. Revoked or already-expired
    grants cannot be extended.
    """
    now = _resolve_now(now)
    new_expiry = require_future_datetime(new_expires_at, "expiresAt", now=now)

    def _op() -> TemporaryRegionAccess:
        grant = _get_temporary(grant_id, for_update=True)
        if grant.revoked_at is not None:
            raise InvalidStateError("Temporary access has been revoked")
        if grant.expires_at <= now:
            raise InvalidStateError("Temporary access has already expired")

        old_expiry = grant.expires_at
        grant.expires_at = new_expiry
        audit_service.log_event(
            extended_by,
            "TEMPORARY_ACCESS_EXTENDED",
            True,
            region=grant.region.name,
            action=f"Extended temporary access to {grant.region.name} for {grant.user.username}",
            details={
                "grant_id": grant.id,
                "target_user_id": grant.user_id,
                "old_expires_at": old_expiry.isoformat(),
                "new_expires_at": new_expiry.isoformat(),
            },
            commit=False,
        )
        db.session.commit()
        return grant

    try:
        return run_with_retry(_op)
    except (SQLAlchemyError, InvalidStateError, NotFoundError):
        # Also releases the row lock
        db.session.rollback()
        raise


def revoke_temporary(
    grant_id: int,
    revoked_by: int | None,
    reason: str | None = None,
) -> TemporaryRegionAccess:
    """
    Revoke a temporary grant. Permanent grants on the same region are untouched.

    Raises NotFoundError for unknown ids and InvalidStateError when the
    grant was already revoked.
    """
    reason = optional_text(reason, "reason", max_length=2000)

    try:
        grant = _get_temporary(grant_id, for_update=True)
        if grant.revoked_at is not None:
            raise InvalidStateError("Access already revoked")

        grant.revoked_at = utcnow()
        grant.revoked_by_user_id = revoked_by
        grant.revocation_reason = reason
        audit_service.log_event(
            revoked_by,
            "TEMPORARY_ACCESS_REVOKED",
            True,
            severity="warning",
            region=grant.region.name,
            action=f"Revoked temporary access to {grant.region.name} for {grant.user.username}",
            reason=reason,
            details={"grant_id": grant.id, "target_user_id": grant.user_id},
            commit=False,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    except InvalidStateError:
        db.session.rollback()
        raise
    return grant


def list_temporary_grants(
    *,
    status: str | None = None,
    user_id: int | None = None,
    region: str | None = None,
    now: datetime | None = None,
) -> list[TemporaryRegionAccess]:
    """Newest first; status is one of active / expired / revoked."""
    now = _resolve_now(now)
    query = db.session.query(TemporaryRegionAccess)

    if status == "active":
        query = query.filter(_active_temporary_filter(now))
    elif status == "revoked":
        query = query.filter(TemporaryRegionAccess.revoked_at.isnot(None))
    elif status == "expired":
        query = query.filter(
            TemporaryRegionAccess.revoked_at.is_(None),
            TemporaryRegionAccess.expires_at <= now,
        )
    elif status:
        raise ValidationError("status must be one of: active, expired, revoked", "status")

    if user_id is not None:
        query = query.filter(TemporaryRegionAccess.user_id == user_id)
    if region:
        query = query.join(Region, TemporaryRegionAccess.region_id == Region.id).filter(Region.name == region)

    return query.order_by(TemporaryRegionAccess.granted_at.desc(), TemporaryRegionAccess.id.desc()).all()


def get_active_temporary_grants(user_id: int, now: datetime | None = None) -> list[TemporaryRegionAccess]:
    """Soonest expiry first."""
    now = _resolve_now(now)
    return (
        db.session.query(TemporaryRegionAccess)
        .filter(TemporaryRegionAccess.user_id == user_id, _active_temporary_filter(now))
        .order_by(TemporaryRegionAccess.expires_at.asc())
        .all()
    )


def get_expiring_grants(days_ahead: int = 7, now: datetime | None = None) -> list[TemporaryRegionAccess]:
    """Active grants that expire within the next `days_ahead` days."""
    now = _resolve_now(now)
    horizon = now + timedelta(days=days_ahead)
    return (
        db.session.query(TemporaryRegionAccess)
        .filter(_active_temporary_filter(now), TemporaryRegionAccess.expires_at <= horizon)
        .order_by(TemporaryRegionAccess.expires_at.asc())
        .all()
    )


def get_temporary_access_stats(user_id: int | None = None, now: datetime | None = None) -> dict:
    now = _resolve_now(now)
    grants = list_temporary_grants(user_id=user_id, now=now)

    counts = {"active": 0, "expired": 0, "revoked": 0}
    by_region: dict[str, int] = {}
    by_user: dict[str, int] = {}

    for grant in grants:
        counts[grant.status_at(now)] += 1
        region_name = grant.region.name
        by_region[region_name] = by_region.get(region_name, 0) + 1
        username = grant.user.username
        by_user[username] = by_user.get(username, 0) + 1

    return {
        "total_grants": len(grants),
        "active_grants": counts["active"],
        "expired_grants": counts["expired"],
        "revoked_grants": counts["revoked"],
        "grants_by_region": by_region,
        "grants_by_user": by_user,
    }


def time_remaining(expires_at: datetime, now: datetime | None = None) -> dict:
    """
    Human-readable breakdown of the time left on a grant.

    Seconds are only shown for grants with less than a day left.
    """
    now = _resolve_now(now)
    total = int((to_naive_utc(expires_at) - now).total_seconds())

    if total <= 0:
        return {
            "expired": True,
            "display": "Expired",
            "days": 0,
            "hours": 0,
            "minutes": 0,
            "seconds": 0,
            "total_seconds": 0,
        }

    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds and not days:
        parts.append(f"{seconds}s")

    return {
        "expired": False,
        "display": " ".join(parts) or "Just now",
        "days": days,
        "hours": hours,
        "minutes": minutes,
        "seconds": seconds,
        "total_seconds": total,
    }
