"""
Worktrack Platform
Tests: permission request workflow.

Covers:
    1. create_request: role, validation, AlreadyPending / AlreadyGranted, admin fan-out
    2. review_request: approve (grant created), reject, AlreadyReviewed, RoleMismatch
    3. Listing
"""

from datetime import timedelta

import pytest

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models import db
from app.models.access import PermissionRequest, TemporaryPermission
from app.models.auth import User
from app.models.notification import Notification
from app.services import grant_service, permission_request_service as prs

REASON = "need to triage bugs"


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 1: Create
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateRequest:

    def test_create_pending_request(self, developer, project, freeze):
        result = prs.create_request(developer.id, project.id, 10, REASON)
        assert result["status"] == "PENDING"
        assert result["requested_duration_days"] == 10
        assert result["reason"] == REASON
        assert result["requested_by"] == developer.id

    def test_second_pending_request_conflicts(self, developer, project, freeze):
        prs.create_request(developer.id, project.id, 10, REASON)
        with pytest.raises(StateConflictError) as exc:
            prs.create_request(developer.id, project.id, 5, "another good reason")
        assert exc.value.kind == "AlreadyPending"
        assert PermissionRequest.query.count() == 1

    def test_pending_request_in_other_project_is_fine(self, developer, project, make_project, freeze):
        other = make_project("Zephyr")
        prs.create_request(developer.id, project.id, 10, REASON)
        prs.create_request(developer.id, other.id, 10, REASON)
        assert PermissionRequest.query.count() == 2

    def test_active_grant_conflicts(self, manager, developer, project, freeze):
        grant_service.grant_permission(manager.id, developer.id, project.id)
        with pytest.raises(StateConflictError) as exc:
            prs.create_request(developer.id, project.id, 10, REASON)
        assert exc.value.kind == "AlreadyGranted"

    def test_expired_grant_does_not_conflict(self, manager, developer, project, freeze):
        grant_service.grant_permission(manager.id, developer.id, project.id, duration_days=1)
        freeze.advance(timedelta(days=1, seconds=1))
        result = prs.create_request(developer.id, project.id, 10, REASON)
        assert result["status"] == "PENDING"

    @pytest.mark.parametrize("role_fixture", ["manager", "group_head", "team_lead"])
    def test_only_developers_may_request(self, role_fixture, project, request, freeze):
        user = request.getfixturevalue(role_fixture)
        with pytest.raises(AuthorizationError) as exc:
            prs.create_request(user.id, project.id, 10, REASON)
        assert exc.value.kind == "InsufficientPermissions"

    def test_role_check_precedes_validation(self, team_lead, freeze):
        with pytest.raises(AuthorizationError):
            prs.create_request(team_lead.id, 999, 0, "short")

    @pytest.mark.parametrize("days", [0, 91, None, "10"])
    def test_duration_validated(self, developer, project, days, freeze):
        with pytest.raises(ValidationError):
            prs.create_request(developer.id, project.id, days, REASON)

    @pytest.mark.parametrize("reason", [None, "too short", "x" * 1001, "   padded   "])
    def test_reason_validated(self, developer, project, reason, freeze):
        with pytest.raises(ValidationError):
            prs.create_request(developer.id, project.id, 10, reason)

    def test_validation_precedes_project_lookup(self, developer, freeze):
        with pytest.raises(ValidationError):
            prs.create_request(developer.id, 999, 0, REASON)

    def test_unknown_project(self, developer, freeze):
        with pytest.raises(NotFoundError):
            prs.create_request(developer.id, 999, 10, REASON)

    def test_admins_are_notified(self, developer, manager, group_head, team_lead, project, freeze):
        result = prs.create_request(developer.id, project.id, 10, REASON)
        notes = Notification.query.filter_by(type="PERMISSION_REQUESTED").all()
        assert sorted(n.recipient_id for n in notes) == sorted([manager.id, group_head.id])
        assert all(n.related_id == result["id"] for n in notes)
        assert "Dev One" in notes[0].message


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 2: Review
# ═══════════════════════════════════════════════════════════════════════════

class TestReviewRequest:

    def test_approve_creates_grant(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        result = prs.review_request(req["id"], manager.id, "APPROVED", "ok")

        assert result["status"] == "APPROVED"
        assert result["reviewed_by"] == manager.id
        assert result["review_notes"] == "ok"
        assert result["grant"]["expires_at"] == (freeze() + timedelta(days=10)).isoformat()
        assert result["grant"]["reason"] == f"Approved request: {REASON}"

        grants = TemporaryPermission.query.filter_by(user_id=developer.id).all()
        assert len(grants) == 1
        assert grants[0].granted_by == manager.id
        approved = Notification.query.filter_by(
            recipient_id=developer.id, type="PERMISSION_APPROVED",
        ).all()
        assert len(approved) == 1

    def test_lowercase_decision_accepted(self, developer, group_head, project, freeze):
        req = prs.create_request(developer.id, project.id, 3, REASON)
        assert prs.review_request(req["id"], group_head.id, "approved")["status"] == "APPROVED"

    def test_approve_reuses_existing_grant(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        existing = grant_service.grant_permission(manager.id, developer.id, project.id, duration_days=2)
        result = prs.review_request(req["id"], manager.id, "APPROVED")
        assert result["grant"]["id"] == existing["id"]
        assert TemporaryPermission.query.count() == 1

    def test_reject_includes_notes_in_notification(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        result = prs.review_request(req["id"], manager.id, "REJECTED", "Not this sprint")
        assert result["status"] == "REJECTED"
        assert result["grant"] is None
        assert TemporaryPermission.query.count() == 0
        note = Notification.query.filter_by(
            recipient_id=developer.id, type="PERMISSION_REJECTED",
        ).one()
        assert note.message.endswith("Reason: Not this sprint")

    def test_second_review_conflicts(self, developer, manager, group_head, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        prs.review_request(req["id"], manager.id, "REJECTED")
        with pytest.raises(StateConflictError) as exc:
            prs.review_request(req["id"], group_head.id, "APPROVED")
        assert exc.value.kind == "AlreadyReviewed"
        assert db.session.get(PermissionRequest, req["id"]).status == "REJECTED"

    def test_new_request_allowed_after_review(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        prs.review_request(req["id"], manager.id, "REJECTED")
        again = prs.create_request(developer.id, project.id, 10, REASON)
        assert again["status"] == "PENDING"

    def test_reviewer_must_be_admin(self, developer, team_lead, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        with pytest.raises(AuthorizationError) as exc:
            prs.review_request(req["id"], team_lead.id, "APPROVED")
        assert exc.value.kind == "InsufficientPermissions"

    def test_requester_role_changed(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        user = db.session.get(User, developer.id)
        user.role = "TEAM_LEAD"
        db.session.commit()
        with pytest.raises(AuthorizationError) as exc:
            prs.review_request(req["id"], manager.id, "APPROVED")
        assert exc.value.kind == "RoleMismatch"
        assert db.session.get(PermissionRequest, req["id"]).status == "PENDING"

    @pytest.mark.parametrize("decision", ["PENDING", "MAYBE", None])
    def test_invalid_decision(self, developer, manager, project, decision, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        with pytest.raises(ValidationError):
            prs.review_request(req["id"], manager.id, decision)

    def test_notes_too_long(self, developer, manager, project, freeze):
        req = prs.create_request(developer.id, project.id, 10, REASON)
        with pytest.raises(ValidationError):
            prs.review_request(req["id"], manager.id, "APPROVED", "n" * 501)

    def test_unknown_request(self, manager, freeze):
        with pytest.raises(NotFoundError):
            prs.review_request(999, manager.id, "APPROVED")


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 3: Listing
# ═══════════════════════════════════════════════════════════════════════════

class TestListRequests:

    def test_list_my_requests(self, developer, other_developer, project, freeze):
        prs.create_request(developer.id, project.id, 10, REASON)
        prs.create_request(other_developer.id, project.id, 10, REASON)
        mine = prs.list_my_requests(developer.id)
        assert len(mine) == 1
        assert mine[0]["requested_by"] == developer.id

    def test_admin_query_filters_by_status(self, developer, other_developer, manager, project, freeze):
        first = prs.create_request(developer.id, project.id, 10, REASON)
        prs.create_request(other_developer.id, project.id, 10, REASON)
        prs.review_request(first["id"], manager.id, "APPROVED")

        pending = prs.requests_query(manager.id, status="pending").all()
        assert [r.requested_by for r in pending] == [other_developer.id]
        assert prs.requests_query(manager.id).count() == 2

    def test_admin_query_requires_admin(self, developer, freeze):
        with pytest.raises(AuthorizationError):
            prs.requests_query(developer.id)
