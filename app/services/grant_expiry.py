"""Grant expiry sweeps.

    expire_grants          deactivate grants whose expiry has passed (hourly)
    warn_expiring_grants   warn holders of grants expiring within 3 days (daily)

Both are safe under at-least-once triggering. Each grant is handled in its
own transaction: re-read, notify, flip, commit. A row that fails is rolled
back and logged and the sweep moves on. Nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from app.models import db
from app.models.access import TemporaryPermission
from app.services.notification import NotificationService
from app.utils import clock

logger = logging.getLogger(__name__)

WARNING_WINDOW = timedelta(days=3)
WARNING_DEDUPE_WINDOW = timedelta(hours=24)


def _project_name(grant: TemporaryPermission) -> str:
    return grant.project.name if grant.project else "Unknown"


def expire_grants(now: datetime | None = None) -> dict:
    """Deactivate every active grant with ``expires_at <= now``.

    The holder is notified right before their row is flipped, so a
    notification always describes a change that is committed with it.
    """
    now = now or clock.now()
    ids = db.session.execute(
        select(TemporaryPermission.id)
        .where(
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at <= now,
        )
        .order_by(TemporaryPermission.expires_at)
    ).scalars().all()

    expired = 0
    errors = 0
    for grant_id in ids:
        try:
            grant = db.session.get(TemporaryPermission, grant_id, populate_existing=True)
            # Revoked or already expired by a concurrent run
            if grant is None or not grant.is_active:
                continue
            NotificationService.notify(
                recipient_id=grant.user_id,
                sender_id=grant.granted_by,
                message=(
                    f'Your temporary task assignment permission for project '
                    f'"{_project_name(grant)}" has expired.'
                ),
                type="PERMISSION_EXPIRED",
                related_id=grant.id,
                project_id=grant.project_id,
            )
            grant.is_active = False
            db.session.commit()
            expired += 1
        except Exception:
            db.session.rollback()
            errors += 1
            logger.exception("Failed to expire temporary permission id=%s", grant_id)

    if expired or errors:
        logger.info("Grant expiry sweep: expired=%d errors=%d", expired, errors)
    return {"expired_count": expired, "errors": errors}


def warn_expiring_grants(now: datetime | None = None) -> dict:
    """Notify holders of active grants expiring in ``(now, now + 3 days]``.

    A grant is skipped if its holder already received a PERMISSION_EXPIRING
    notification for it within the last 24 hours.
    """
    now = now or clock.now()
    ids = db.session.execute(
        select(TemporaryPermission.id)
        .where(
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at > now,
            TemporaryPermission.expires_at <= now + WARNING_WINDOW,
        )
        .order_by(TemporaryPermission.expires_at)
    ).scalars().all()

    notified = 0
    skipped = 0
    errors = 0
    for grant_id in ids:
        try:
            grant = db.session.get(TemporaryPermission, grant_id, populate_existing=True)
            if grant is None or not grant.is_valid(now):
                skipped += 1
                continue
            if NotificationService.recent_exists(
                recipient_id=grant.user_id,
                type="PERMISSION_EXPIRING",
                related_id=grant.id,
                within=WARNING_DEDUPE_WINDOW,
                now=now,
            ):
                skipped += 1
                continue

            days = clock.days_until(grant.expires_at, now)
            notif = NotificationService.notify(
                recipient_id=grant.user_id,
                sender_id=grant.granted_by,
                message=(
                    f'Your temporary task assignment permission for project '
                    f'"{_project_name(grant)}" will expire in {days} '
                    f'day{"s" if days != 1 else ""} (on {grant.expires_at.date().isoformat()}).'
                ),
                type="PERMISSION_EXPIRING",
                related_id=grant.id,
                project_id=grant.project_id,
            )
            if notif is None:
                errors += 1
                continue
            db.session.commit()
            notified += 1
        except Exception:
            db.session.rollback()
            errors += 1
            logger.exception("Failed to warn about expiring permission id=%s", grant_id)

    logger.info("Grant expiry warnings: notified=%d skipped=%d errors=%d",
                notified, skipped, errors)
    return {"notified_count": notified, "skipped": skipped, "errors": errors}
