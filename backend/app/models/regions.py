from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Region(db.Model):
    """
    Catalog of grantable geographic regions (states / union territories).

    Grants and requests reference regions by id; the API speaks region names.
    """
    __tablename__ = "regions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True, index=True)
    code = db.Column(db.String(16), nullable=True, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
        }


class UserRegion(db.Model):
    """
    Permanent region grant: the baseline access a user holds.

    Created by admin assignment or request approval, removed by revocation.
    Temporary grants never write here.
    """
    __tablename__ = "user_regions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "region_id", name="uq_user_regions"),
        db.Index("ix_user_regions_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=False, index=True)
    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("region_grants", lazy=True))
    region = db.relationship("Region")
    granted_by = db.relationship("User", foreign_keys=[granted_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "region": self.region.name if self.region else None,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
        }


class TemporaryRegionAccess(db.Model):
    """
    Time-boxed region grant.

    ACTIVE iff revoked_at IS NULL AND expires_at > now. Nothing flips a flag
    on expiry; every reader applies the predicate at its own "now".
    """
    __tablename__ = "temporary_region_access"
    __table_args__ = (
        db.Index("ix_temporary_region_access_user_region", "user_id", "region_id"),
        db.Index("ix_temporary_region_access_expires", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    region_id = db.Column(db.Integer, db.ForeignKey("regions.id"), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    revocation_reason = db.Column(db.Text, nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("temporary_region_grants", lazy=True))
    region = db.relationship("Region")
    granted_by = db.relationship("User", foreign_keys=[granted_by_user_id])
    revoked_by = db.relationship("User", foreign_keys=[revoked_by_user_id])

    def status_at(self, now) -> str:
        if self.revoked_at is not None:
            return "revoked"
        if self.expires_at <= now:
            return "expired"
        return "active"

    def to_dict(self, now=None) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "region": self.region.name if self.region else None,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "expires_at": to_utc_z(self.expires_at),
            "reason": self.reason,
            "revoked_at": to_utc_z(self.revoked_at),
            "revoked_by_user_id": self.revoked_by_user_id,
            "revocation_reason": self.revocation_reason,
        }
        if now is not None:
            data["status"] = self.status_at(now)
        return data


class RegionAccessRequest(db.Model):
    """
    User-initiated proposal to receive permanent grants.

    pending -> approved | rejected (Manager/Admin), pending -> cancelled (requester).
    Approval and the resulting UserRegion rows are committed together.
    """
    __tablename__ = "region_access_requests"
    __table_args__ = (
        db.Index("ix_region_access_requests_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_CANCELLED = "cancelled"
    STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED, STATUS_CANCELLED)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    requested_regions = db.Column(db.JSON, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("region_requests", lazy=True))
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "user_role": self.user.role if self.user else None,
            "requested_regions": list(self.requested_regions or []),
            "reason": self.reason,
            "status": self.status,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "review_notes": self.review_notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
