"""Permission request workflow.

Developer asks for temporary assignment rights in a project; a MANAGER or
GROUP_HEAD approves or rejects. Approval creates the grant.

Rules:
  - Authorization runs first, then input validation, then state reads.
  - At most one PENDING request per (requester, project).
  - PENDING is the only mutable state; review is terminal.
  - The review update and the grant insert commit in one transaction.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models import db
from app.models.access import (
    GRANT_REASON_MAX_LENGTH,
    REASON_MAX_LENGTH,
    REASON_MIN_LENGTH,
    REVIEW_DECISIONS,
    REVIEW_NOTES_MAX_LENGTH,
    PermissionRequest,
    PermissionRequestStatus,
)
from app.models.auth import GRANT_ADMIN_ROLES, Project, User, UserRole
from app.services import grant_service
from app.services.notification import NotificationService
from app.utils import clock

logger = logging.getLogger(__name__)


def _validate_reason(reason) -> str:
    if not isinstance(reason, str):
        raise ValidationError("reason is required", {"field": "reason"})
    reason = reason.strip()
    if not REASON_MIN_LENGTH <= len(reason) <= REASON_MAX_LENGTH:
        raise ValidationError(
            f"reason must be between {REASON_MIN_LENGTH} and {REASON_MAX_LENGTH} characters",
            {"field": "reason"},
        )
    return reason


# ── Create ────────────────────────────────────────────────────────────────────


def create_request(requester_id: int, project_id: int, duration_days, reason) -> dict:
    """Open a PENDING request and notify every MANAGER / GROUP_HEAD.

    Raises:
        AuthorizationError:  requester is not a DEVELOPER.
        ValidationError:     duration outside 1..90 or reason length invalid.
        NotFoundError:       unknown project.
        StateConflictError:  AlreadyPending, AlreadyGranted.
    """
    requester = db.session.get(User, requester_id)
    if requester is None or requester.user_role is not UserRole.DEVELOPER:
        raise AuthorizationError(
            "InsufficientPermissions",
            "Only developers can request temporary assignment permissions",
        )

    duration_days = grant_service.validate_duration(duration_days, "requested_duration_days")
    reason = _validate_reason(reason)

    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    pending = db.session.execute(
        select(PermissionRequest.id).where(
            PermissionRequest.requested_by == requester_id,
            PermissionRequest.project_id == project_id,
            PermissionRequest.status == PermissionRequestStatus.PENDING.value,
        )
    ).first()
    if pending is not None:
        raise StateConflictError(
            "AlreadyPending",
            "You already have a pending request for this project",
            {"request_id": pending.id},
        )

    active = grant_service.find_active_grant(requester_id, project_id)
    if active is not None:
        raise StateConflictError(
            "AlreadyGranted",
            "You already have an active permission for this project",
            {"grant_id": active.id},
        )

    req = PermissionRequest(
        requested_by=requester_id,
        project_id=project_id,
        requested_duration_days=duration_days,
        reason=reason,
        status=PermissionRequestStatus.PENDING.value,
    )
    db.session.add(req)
    db.session.flush()

    admin_ids = db.session.execute(
        select(User.id).where(User.role.in_([r.value for r in GRANT_ADMIN_ROLES]))
    ).scalars().all()
    NotificationService.notify_many(
        admin_ids,
        sender_id=requester_id,
        message=(
            f'{requester.name or "A developer"} requested temporary task assignment '
            f'permission for project "{project.name}" for {duration_days} days.'
        ),
        type="PERMISSION_REQUESTED",
        related_id=req.id,
        project_id=project_id,
    )
    db.session.commit()

    logger.info("Permission request created id=%s user_id=%s project_id=%s days=%s",
                req.id, requester_id, project_id, duration_days)
    return req.to_dict()


# ── Review ────────────────────────────────────────────────────────────────────


def review_request(request_id: int, reviewer_id: int, decision, notes=None) -> dict:
    """Approve or reject a PENDING request.

    On APPROVED a grant expiring ``now + requested_duration_days`` is created
    unless an active one already covers the pair. The request update, grant
    insert and notification are committed together.

    Raises:
        AuthorizationError:  reviewer is not MANAGER / GROUP_HEAD (InsufficientPermissions),
                             or requester is no longer a DEVELOPER (RoleMismatch).
        ValidationError:     decision not APPROVED/REJECTED, notes too long.
        NotFoundError:       unknown request.
        StateConflictError:  AlreadyReviewed.
    """
    grant_service.require_grant_admin(reviewer_id, "review permission requests")

    decision = str(decision or "").upper()
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(REVIEW_DECISIONS))}",
            {"field": "status"},
        )
    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationError("review_notes must be a string", {"field": "review_notes"})
        notes = notes.strip() or None
        if notes and len(notes) > REVIEW_NOTES_MAX_LENGTH:
            raise ValidationError(
                f"review_notes must be at most {REVIEW_NOTES_MAX_LENGTH} characters",
                {"field": "review_notes"},
            )

    req = db.session.get(PermissionRequest, request_id)
    if req is None:
        raise NotFoundError(resource="PermissionRequest", resource_id=request_id)
    if not req.is_pending:
        raise StateConflictError(
            "AlreadyReviewed",
            "This request has already been reviewed",
            {"status": req.status},
        )
    if req.requester is None or req.requester.user_role is not UserRole.DEVELOPER:
        raise AuthorizationError(
            "RoleMismatch",
            "Permission requests can only be made by developers",
        )

    now = clock.now()
    req.status = decision
    req.reviewed_by = reviewer_id
    req.reviewed_at = now
    if notes:
        req.review_notes = notes

    project_name = req.project.name if req.project else "Unknown"
    grant = None
    if decision == PermissionRequestStatus.APPROVED.value:
        grant = grant_service.find_active_grant(req.requested_by, req.project_id, now)
        if grant is None:
            grant, _ = grant_service.upsert_grant(
                user_id=req.requested_by,
                project_id=req.project_id,
                granted_by=reviewer_id,
                expires_at=now + timedelta(days=req.requested_duration_days),
                reason=f"Approved request: {req.reason}"[:GRANT_REASON_MAX_LENGTH],
                now=now,
            )
        message = (
            f'Your request for temporary task assignment permission in project '
            f'"{project_name}" has been approved for {req.requested_duration_days} days.'
        )
        notif_type = "PERMISSION_APPROVED"
    else:
        message = (
            f'Your request for temporary task assignment permission in project '
            f'"{project_name}" has been rejected.'
        )
        if notes:
            message += f" Reason: {notes}"
        notif_type = "PERMISSION_REJECTED"

    NotificationService.notify(
        recipient_id=req.requested_by,
        sender_id=reviewer_id,
        message=message,
        type=notif_type,
        related_id=req.id,
        project_id=req.project_id,
    )
    db.session.commit()

    logger.info("Permission request %s id=%s reviewer_id=%s grant_id=%s",
                decision.lower(), req.id, reviewer_id, grant.id if grant else None)
    result = req.to_dict()
    result["grant"] = grant.to_dict() if grant is not None else None
    return result


# ── Queries ───────────────────────────────────────────────────────────────────


def get_request(request_id: int) -> dict:
    req = db.session.get(PermissionRequest, request_id)
    if req is None:
        raise NotFoundError(resource="PermissionRequest", resource_id=request_id)
    return req.to_dict()


def requests_query(viewer_id: int, *, status=None, project_id=None):
    """Admin listing of requests, newest first. The caller paginates."""
    grant_service.require_grant_admin(viewer_id, "view permission requests")
    q = PermissionRequest.query
    if status:
        q = q.filter(PermissionRequest.status == str(status).upper())
    if project_id is not None:
        q = q.filter(PermissionRequest.project_id == project_id)
    return q.order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())


def list_my_requests(user_id: int) -> list[dict]:
    stmt = (
        select(PermissionRequest)
        .where(PermissionRequest.requested_by == user_id)
        .order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc())
    )
    return [r.to_dict() for r in db.session.execute(stmt).scalars()]
