from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Region access audit log.

    WHY: Every grant, revoke, review and access decision must be reviewable
    for compliance. Denials in particular show who tried to act outside
    their regions.

    IMMUTABLE: Never update. Rows are only created, and bulk-purged by an Admin.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_user_type", "user_id", "event_type"),
        db.Index("ix_audit_events_region_occurred", "region", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)  # Nullable for anonymous

    # Event classification
    event_type = db.Column(db.String(64), nullable=False, index=True)  # REGION_ACCESS_DENIED, TEMPORARY_ACCESS_GRANTED, etc.
    severity = db.Column(db.String(16), nullable=False, default="info")  # info, warning, error, critical
    region = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(255), nullable=True)  # e.g., "Granted temporary access to Delhi for asha"

    # Event details
    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("audit_events", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "event_type": self.event_type,
            "severity": self.severity,
            "region": self.region,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "details": self.details or {},
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
