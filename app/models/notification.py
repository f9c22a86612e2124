"""
Worktrack Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from app.models import db
from app.utils import clock


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {
    "PERMISSION_REQUESTED",
    "PERMISSION_APPROVED",
    "PERMISSION_REJECTED",
    "PERMISSION_GRANTED",
    "PERMISSION_REVOKED",
    "PERMISSION_EXPIRED",
    "PERMISSION_EXPIRING",
    "EOD_REMINDER",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. ``related_id`` points at the request
    or grant that triggered it and, together with ``type``, is the dedupe key
    for periodic warnings.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_dedupe", "recipient_id", "type", "related_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(40), nullable=False)
    related_id = db.Column(db.Integer, nullable=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.now(), index=True)

    def mark_read(self):
        self.is_read = True
        self.read_at = clock.now()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "sender_id": self.sender_id,
            "message": self.message,
            "type": self.type,
            "related_id": self.related_id,
            "project_id": self.project_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} → {self.recipient_id}>"
