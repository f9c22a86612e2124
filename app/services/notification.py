"""
Worktrack Platform
Notification Service.

Central sink for in-app notifications raised by the access and EOD core.

Delivery is fire-and-forget: each notification is written inside a
SAVEPOINT, so a failure is logged and rolled back on its own while the
caller's transaction continues. The caller owns the final commit.
"""

import logging
from datetime import timedelta

from sqlalchemy import select

from app.models import db
from app.models.notification import Notification
from app.utils import clock

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(*, recipient_id, message, type, sender_id=None,
               related_id=None, project_id=None):
        """
        Record a single notification without committing.

        Returns:
            The Notification, or None if writing it failed.
        """
        try:
            with db.session.begin_nested():
                notif = Notification(
                    recipient_id=recipient_id,
                    sender_id=sender_id,
                    message=message,
                    type=type,
                    related_id=related_id,
                    project_id=project_id,
                )
                db.session.add(notif)
            return notif
        except Exception:
            logger.exception(
                "Failed to create %s notification for user %s (related_id=%s)",
                type, recipient_id, related_id,
            )
            return None

    @staticmethod
    def notify_many(recipient_ids, **kwargs):
        """Send the same notification to several users; returns those written."""
        written = []
        for rid in recipient_ids:
            notif = NotificationService.notify(recipient_id=rid, **kwargs)
            if notif is not None:
                written.append(notif)
        return written

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def recent_exists(*, recipient_id, type, related_id, within=timedelta(hours=24), now=None):
        """True if the same notification was already created within ``within``."""
        now = now or clock.now()
        stmt = (
            select(Notification.id)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.type == type,
                Notification.related_id == related_id,
                Notification.created_at >= now - within,
            )
            .limit(1)
        )
        return db.session.execute(stmt).first() is not None

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (q.order_by(Notification.created_at.desc(), Notification.id.desc())
                 .offset(offset).limit(limit).all())
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark one of the recipient's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            return None
        notif.mark_read()
        db.session.commit()
        return notif
