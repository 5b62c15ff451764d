"""
Region access request tests.

Verifies:
- Submission validation (reason length, region list, already-held regions)
- Approval creates one permanent grant per region, all-or-nothing
- Rejection, cancellation and deletion rules
- HTTP status mapping for the request endpoints
"""

import pytest

from app.models import AuditEvent, RegionAccessRequest, UserRegion
from app.services import grant_service, request_service
from app.validation import AuthorizationError, InvalidStateError, NotFoundError, ValidationError


REASON = "Need to survey new fibre routes"


class TestCreateRequest:

    def test_creates_pending_request(self, seed, db_session):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi", "Punjab"], REASON)

        assert request_row.status == RegionAccessRequest.STATUS_PENDING
        assert request_row.requested_regions == ["Delhi", "Punjab"]
        assert db_session.query(AuditEvent).filter_by(event_type="REGION_REQUEST_CREATED").count() == 1

    def test_reason_is_trimmed_before_length_check(self, seed):
        with pytest.raises(ValidationError) as exc:
            request_service.create_access_request(seed["technician"].id, ["Delhi"], "   too short   ")
        assert exc.value.field == "reason"

    def test_requires_a_region(self, seed):
        with pytest.raises(ValidationError) as exc:
            request_service.create_access_request(seed["technician"].id, [], REASON)
        assert exc.value.field == "regions"

    def test_rejects_duplicate_regions(self, seed):
        with pytest.raises(ValidationError):
            request_service.create_access_request(seed["technician"].id, ["Delhi", "Delhi"], REASON)

    def test_rejects_unknown_regions(self, seed):
        with pytest.raises(ValidationError):
            request_service.create_access_request(seed["technician"].id, ["Delhi", "Atlantis"], REASON)

    def test_rejects_regions_already_held(self, seed, db_session):
        tech = seed["technician"]
        grant_service.grant_permanent(tech.id, "Delhi", seed["admin"].id)

        with pytest.raises(ValidationError):
            request_service.create_access_request(tech.id, ["Delhi"], REASON)
        assert db_session.query(RegionAccessRequest).count() == 0

    def test_rejects_regions_already_pending(self, seed, db_session):
        tech = seed["technician"]
        request_service.create_access_request(tech.id, ["Goa"], REASON)

        with pytest.raises(ValidationError) as exc:
            request_service.create_access_request(tech.id, ["Kerala", "Goa"], REASON)

        assert exc.value.field == "regions"
        assert "pending request for: Goa" in str(exc.value)
        assert db_session.query(RegionAccessRequest).count() == 1

    def test_region_can_be_requested_again_after_rejection(self, seed):
        tech = seed["technician"]
        first = request_service.create_access_request(tech.id, ["Goa"], REASON)
        request_service.reject_request(first.id, seed["manager"].id)

        second = request_service.create_access_request(tech.id, ["Goa"], REASON)

        assert second.status == RegionAccessRequest.STATUS_PENDING


class TestApproval:

    def test_approval_creates_one_grant_per_region(self, seed, db_session):
        tech, manager = seed["technician"], seed["manager"]
        request_row = request_service.create_access_request(tech.id, ["Delhi", "Punjab"], REASON)

        approved = request_service.approve_request(request_row.id, manager.id, "Approved for Q3 rollout")

        assert approved.status == RegionAccessRequest.STATUS_APPROVED
        assert approved.reviewed_by_user_id == manager.id
        assert approved.review_notes == "Approved for Q3 rollout"
        assert db_session.query(UserRegion).filter_by(user_id=tech.id).count() == 2
        assert grant_service.get_effective_regions(tech.id) == {"Delhi", "Punjab"}

    def test_failure_mid_approval_leaves_nothing_behind(self, seed, db_session, monkeypatch):
        tech, manager = seed["technician"], seed["manager"]
        request_row = request_service.create_access_request(tech.id, ["Delhi", "Punjab"], REASON)
        request_id = request_row.id

        original = grant_service.stage_permanent_grant
        calls = []

        def fail_on_second(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError("connection dropped")
            return original(*args, **kwargs)

        monkeypatch.setattr(grant_service, "stage_permanent_grant", fail_on_second)

        with pytest.raises(RuntimeError):
            request_service.approve_request(request_id, manager.id)

        assert db_session.query(UserRegion).count() == 0
        assert db_session.get(RegionAccessRequest, request_id).status == RegionAccessRequest.STATUS_PENDING
        assert db_session.query(AuditEvent).filter_by(event_type="REGION_ASSIGNED").count() == 0
        assert db_session.query(AuditEvent).filter_by(event_type="REGION_REQUEST_APPROVED").count() == 0

    def test_non_reviewer_cannot_approve(self, seed):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        with pytest.raises(AuthorizationError):
            request_service.approve_request(request_row.id, seed["user"].id)

    def test_cannot_approve_twice(self, seed):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        request_service.approve_request(request_row.id, seed["manager"].id)
        with pytest.raises(InvalidStateError):
            request_service.approve_request(request_row.id, seed["admin"].id)

    def test_reject(self, seed, db_session):
        tech = seed["technician"]
        request_row = request_service.create_access_request(tech.id, ["Delhi"], REASON)

        rejected = request_service.reject_request(request_row.id, seed["admin"].id, "Not in your circle")

        assert rejected.status == RegionAccessRequest.STATUS_REJECTED
        assert db_session.query(UserRegion).count() == 0


class TestCancellation:

    def test_requester_cancels_pending(self, seed):
        tech = seed["technician"]
        request_row = request_service.create_access_request(tech.id, ["Delhi"], REASON)

        cancelled = request_service.cancel_request(request_row.id, tech.id)

        assert cancelled.status == RegionAccessRequest.STATUS_CANCELLED

    def test_cancel_after_approval_rejected_and_status_kept(self, seed, db_session):
        tech = seed["technician"]
        request_row = request_service.create_access_request(tech.id, ["Delhi"], REASON)
        request_service.approve_request(request_row.id, seed["manager"].id)

        with pytest.raises(InvalidStateError):
            request_service.cancel_request(request_row.id, tech.id)

        assert db_session.get(RegionAccessRequest, request_row.id).status == RegionAccessRequest.STATUS_APPROVED

    def test_other_user_cannot_cancel(self, seed):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        with pytest.raises(NotFoundError):
            request_service.cancel_request(request_row.id, seed["user"].id)

    def test_admin_deletes_any_status(self, seed, db_session):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        request_service.approve_request(request_row.id, seed["manager"].id)

        request_service.delete_request(request_row.id, seed["admin"])

        assert db_session.query(RegionAccessRequest).count() == 0
        # Deleting the request leaves the grants it produced
        assert grant_service.get_effective_regions(seed["technician"].id) == {"Delhi"}

    def test_manager_cannot_delete(self, seed):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        with pytest.raises(AuthorizationError):
            request_service.delete_request(request_row.id, seed["manager"])


class TestListingAndStats:

    def test_filters_and_stats(self, seed):
        tech, other = seed["technician"], seed["user"]
        first = request_service.create_access_request(tech.id, ["Delhi"], REASON)
        request_service.create_access_request(tech.id, ["Goa", "Kerala"], REASON)
        request_service.create_access_request(other.id, ["Delhi"], REASON)
        request_service.reject_request(first.id, seed["manager"].id)

        assert len(request_service.list_requests(user_id=tech.id)) == 2
        assert len(request_service.list_requests(region="Delhi")) == 2
        assert len(request_service.list_requests(status="pending")) == 2
        assert request_service.has_pending_request_for_region(tech.id, "Goa")
        assert not request_service.has_pending_request_for_region(tech.id, "Delhi")

        stats = request_service.get_request_stats()
        assert stats["total_requests"] == 3
        assert stats["rejected_requests"] == 1
        assert stats["requests_by_region"]["Delhi"] == 2


class TestRequestEndpoints:

    def test_full_flow_over_http(self, client, seed, technician_headers, manager_headers):
        resp = client.post(
            "/api/region-requests",
            json={"regions": ["Delhi", "Punjab"], "reason": REASON},
            headers=technician_headers,
        )
        assert resp.status_code == 201
        request_id = resp.get_json()["request"]["id"]

        resp = client.patch(
            f"/api/region-requests/{request_id}/approve",
            json={"reviewNotes": "ok"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["request"]["status"] == "approved"

        resp = client.get("/api/region-access/effective-regions", headers=technician_headers)
        names = [region["name"] for region in resp.get_json()["regions"]]
        assert names == ["Delhi", "Punjab"]

    def test_short_reason_is_400_with_field(self, client, technician_headers):
        resp = client.post(
            "/api/region-requests",
            json={"regions": ["Delhi"], "reason": "short"},
            headers=technician_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "reason"

    def test_requester_delete_cancels_pending(self, client, seed, technician_headers):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)

        resp = client.delete(f"/api/region-requests/{request_row.id}", headers=technician_headers)

        assert resp.status_code == 200
        assert resp.get_json()["request"]["status"] == "cancelled"

    def test_requester_delete_after_approval_is_409(self, client, seed, technician_headers):
        request_row = request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        request_service.approve_request(request_row.id, seed["manager"].id)

        resp = client.delete(f"/api/region-requests/{request_row.id}", headers=technician_headers)

        assert resp.status_code == 409

    def test_approve_unknown_request_is_404(self, client, manager_headers):
        resp = client.patch("/api/region-requests/999/approve", json={}, headers=manager_headers)
        assert resp.status_code == 404

    def test_users_only_see_their_own_requests(self, client, seed, user_headers):
        request_service.create_access_request(seed["technician"].id, ["Delhi"], REASON)
        resp = client.get("/api/region-requests", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 0
