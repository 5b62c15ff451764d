"""
Audit trail, maintenance and CLI tests.

Verifies:
- Mutations write their audit event in the same transaction
- Event filters, stats and pagination limits
- Purge and retention cleanup
- CLI grant commands
"""

from datetime import timedelta

import pytest

from app.models import AuditEvent, SessionToken
from app.services import audit_service, grant_service, maintenance_service
from app.time_utils import utcnow


class TestAuditService:

    def test_grants_are_audited(self, seed, db_session):
        tech, admin = seed["technician"], seed["admin"]
        grant_service.grant_permanent(tech.id, "Delhi", admin.id)
        grant = grant_service.grant_temporary(tech.id, "Goa", utcnow() + timedelta(hours=1), admin.id, "Audit")
        grant_service.revoke_temporary(grant.id, admin.id)

        events = audit_service.list_events(user_id=admin.id)
        types = [event.event_type for event in events]

        assert types == ["TEMPORARY_ACCESS_REVOKED", "TEMPORARY_ACCESS_GRANTED", "REGION_ASSIGNED"]
        assert events[0].severity == "warning"
        assert events[1].details["target_user_id"] == tech.id

    def test_unknown_severity_falls_back_to_info(self, seed):
        event = audit_service.log_event(seed["admin"].id, "CUSTOM", True, severity="loud")
        assert event.severity == "info"

    def test_stats(self, seed):
        admin = seed["admin"]
        audit_service.log_event(admin.id, "REGION_ACCESS_GRANTED", True, region="Delhi")
        audit_service.log_event(admin.id, "REGION_ACCESS_DENIED", False, region="Delhi")
        audit_service.log_event(None, "REGION_ACCESS_DENIED", False, region="Goa")

        stats = audit_service.get_event_stats(event_type="REGION_ACCESS_DENIED")

        assert stats["total_events"] == 2
        assert stats["failed_events"] == 2
        assert stats["events_by_region"] == {"Delhi": 1, "Goa": 1}
        assert stats["events_by_user"]["anonymous"] == 1

    def test_purge_records_itself(self, seed, db_session):
        admin = seed["admin"]
        old = audit_service.log_event(admin.id, "REGION_ACCESS_GRANTED", True, region="Delhi")
        old.occurred_at = utcnow() - timedelta(days=400)
        db_session.commit()

        deleted = audit_service.purge_events(before=utcnow() - timedelta(days=30), purged_by=admin.id)

        assert deleted == 1
        purge = db_session.query(AuditEvent).filter_by(event_type="AUDIT_PURGED").one()
        assert purge.details["deleted"] == 1


class TestMaintenance:

    def test_retention_cleanup(self, seed, db_session):
        admin = seed["admin"]
        old = audit_service.log_event(admin.id, "REGION_ACCESS_GRANTED", True)
        old.occurred_at = utcnow() - timedelta(days=500)
        audit_service.log_event(admin.id, "REGION_ACCESS_GRANTED", True)
        db_session.commit()

        assert maintenance_service.cleanup_audit_events(retention_days=365) == 1

        purge = db_session.query(AuditEvent).filter_by(event_type="AUDIT_PURGED").one()
        assert purge.user_id is None
        assert purge.details["deleted"] == 1
        assert purge.details["source"] == "retention"
        assert db_session.query(AuditEvent).filter_by(event_type="REGION_ACCESS_GRANTED").count() == 1

    def test_retention_window_must_be_positive(self, seed):
        with pytest.raises(ValueError):
            maintenance_service.cleanup_audit_events(retention_days=0)

    def test_session_cleanup(self, seed, db_session):
        token = SessionToken(
            user_id=seed["technician"].id,
            token_hash="0" * 64,
            created_at=utcnow() - timedelta(days=60),
            last_used_at=utcnow() - timedelta(days=60),
            expires_at=utcnow() - timedelta(days=59),
        )
        db_session.add(token)
        db_session.commit()

        assert maintenance_service.cleanup_sessions(retention_days=30) == 1


class TestAuditEndpoints:

    def test_filters(self, client, seed, admin_headers):
        audit_service.log_event(seed["technician"].id, "REGION_ACCESS_DENIED", False, region="Kerala")

        resp = client.get("/api/audit/events?success=false&region=Kerala", headers=admin_headers)

        assert resp.status_code == 200
        events = resp.get_json()["events"]
        assert len(events) == 1
        assert events[0]["username"] == "asha"

    def test_limit_out_of_range_is_400(self, client, admin_headers):
        resp = client.get("/api/audit/events?limit=5000", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "limit"

    def test_bad_success_flag_is_400(self, client, admin_headers):
        resp = client.get("/api/audit/events?success=maybe", headers=admin_headers)
        assert resp.status_code == 400

    def test_purge_requires_cutoff(self, client, admin_headers):
        resp = client.delete("/api/audit/events", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "before"

    def test_stats_endpoint(self, client, manager_headers):
        resp = client.get("/api/audit/stats?eventType=USER_LOGIN", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["stats"]["total_events"] >= 1


class TestCli:

    def test_assign_and_temporary(self, app, seed):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["grants", "assign", "asha", "Maharashtra"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["grants", "temporary", "asha", "Delhi", "--hours", "2"])
        assert result.exit_code == 0, result.output

        assert grant_service.get_effective_regions(seed["technician"].id) == {"Maharashtra", "Delhi"}

    def test_temporary_conflict_is_reported(self, app, seed):
        grant_service.grant_permanent(seed["technician"].id, "Delhi", seed["admin"].id)
        result = app.test_cli_runner().invoke(args=["grants", "temporary", "asha", "Delhi"])
        assert result.exit_code != 0
        assert "permanent access" in result.output

    def test_unknown_region_fails(self, app, seed):
        result = app.test_cli_runner().invoke(args=["grants", "assign", "asha", "Atlantis"])
        assert result.exit_code != 0

    def test_deactivated_region_drops_out(self, app, seed):
        tech = seed["technician"]
        grant_service.grant_permanent(tech.id, "Goa", seed["admin"].id)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["regions", "deactivate", "Goa"])
        assert result.exit_code == 0, result.output
        assert grant_service.get_effective_regions(tech.id) == set()

        runner.invoke(args=["regions", "activate", "Goa"])
        assert grant_service.get_effective_regions(tech.id) == {"Goa"}

    def test_cleanup_audit_events_is_recorded(self, app, seed, db_session):
        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-audit-events", "--retention-days", "1"])
        assert result.exit_code == 0
        assert "Deleted 0 audit events" in result.output
        assert db_session.query(AuditEvent).filter_by(event_type="AUDIT_PURGED").count() == 1

    def test_cleanup_rejects_zero_retention(self, app, seed):
        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-audit-events", "--retention-days", "0"])
        assert result.exit_code != 0
