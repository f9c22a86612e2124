"""
Worktrack Platform
Temporary access models.

Models:
    - PermissionRequest: developer-initiated request for task-assignment rights
    - TemporaryPermission: time-bound grant of task-assignment rights in one project

Grant rows are never deleted; revocation and expiry only flip ``is_active``.
"""

import enum

from app.models import db
from app.utils import clock


# ── Constants ────────────────────────────────────────────────────────────────

MIN_GRANT_DAYS = 1
MAX_GRANT_DAYS = 90
DEFAULT_GRANT_DAYS = 7

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 1000
REVIEW_NOTES_MAX_LENGTH = 500
GRANT_REASON_MAX_LENGTH = 500


class PermissionRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


REVIEW_DECISIONS = {PermissionRequestStatus.APPROVED.value, PermissionRequestStatus.REJECTED.value}


class PermissionRequest(db.Model):
    """
    A developer's request for temporary assignment permission.

    PENDING is the only mutable state; reviewing is terminal.
    """

    __tablename__ = "permission_requests"
    __table_args__ = (
        db.Index("ix_permreq_requester_status", "requested_by", "status"),
        db.Index("ix_permreq_project_status", "project_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    requested_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    requested_duration_days = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(REASON_MAX_LENGTH), nullable=False)
    status = db.Column(db.String(20), nullable=False,
                       default=PermissionRequestStatus.PENDING.value, index=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    review_notes = db.Column(db.String(REVIEW_NOTES_MAX_LENGTH), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.now())
    updated_at = db.Column(db.DateTime, default=lambda: clock.now(),
                           onupdate=lambda: clock.now())

    requester = db.relationship("User", foreign_keys=[requested_by])
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])
    project = db.relationship("Project")

    @property
    def is_pending(self):
        return self.status == PermissionRequestStatus.PENDING.value

    def to_dict(self):
        return {
            "id": self.id,
            "requested_by": self.requested_by,
            "requester": self.requester.to_dict() if self.requester else None,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "requested_duration_days": self.requested_duration_days,
            "reason": self.reason,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PermissionRequest {self.id} user={self.requested_by} [{self.status}]>"


class TemporaryPermission(db.Model):
    """
    Time-bound elevation of a DEVELOPER to assign tasks within one project.

    At most one row per (user_id, project_id) is active and unexpired at any
    time; re-granting updates that row in place.
    """

    __tablename__ = "temporary_permissions"
    __table_args__ = (
        db.Index("ix_tempperm_lookup", "user_id", "project_id", "is_active", "expires_at"),
        db.Index("ix_tempperm_expiry", "expires_at", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    granted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    reason = db.Column(db.String(GRANT_REASON_MAX_LENGTH), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.now())
    updated_at = db.Column(db.DateTime, default=lambda: clock.now(),
                           onupdate=lambda: clock.now())

    user = db.relationship("User", foreign_keys=[user_id])
    grantor = db.relationship("User", foreign_keys=[granted_by])
    project = db.relationship("Project")

    def is_valid(self, now=None):
        """Active and not yet expired."""
        now = now or clock.now()
        return bool(self.is_active) and self.expires_at > now

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_dict() if self.user else None,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "granted_by": self.granted_by,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": self.is_active,
            "is_valid": self.is_valid(),
            "reason": self.reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return (f"<TemporaryPermission {self.id} user={self.user_id} "
                f"project={self.project_id} active={self.is_active}>")
