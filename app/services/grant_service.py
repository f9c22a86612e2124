"""Temporary permission grants.

Owns TemporaryPermission rows: grant (insert or merge), revoke, lookups.

Rules:
  - Only MANAGER / GROUP_HEAD may grant or revoke; the role check runs
    before any validation or read of the target.
  - At most one active, unexpired row per (user, project). Re-granting
    updates that row in place instead of inserting a second one.
  - Rows are never deleted. Revoke and expiry only flip ``is_active``.
  - Notifications are fire-and-forget (see NotificationService.notify).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from app.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from app.models import db
from app.models.access import (
    DEFAULT_GRANT_DAYS,
    GRANT_REASON_MAX_LENGTH,
    MAX_GRANT_DAYS,
    MIN_GRANT_DAYS,
    TemporaryPermission,
)
from app.models.auth import GRANT_ADMIN_ROLES, Project, User, UserRole
from app.services.notification import NotificationService
from app.utils import clock

logger = logging.getLogger(__name__)


# ── Shared checks ─────────────────────────────────────────────────────────────


def require_grant_admin(user_id: int, action: str = "manage temporary permissions") -> User:
    """Return the user if they are a MANAGER or GROUP_HEAD, else raise."""
    user = db.session.get(User, user_id)
    if user is None or user.user_role not in GRANT_ADMIN_ROLES:
        raise AuthorizationError(
            "InsufficientPermissions",
            f"Only Group Heads and Managers can {action}",
        )
    return user


def validate_duration(value, field: str = "duration_days") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", {"field": field})
    if not MIN_GRANT_DAYS <= value <= MAX_GRANT_DAYS:
        raise ValidationError(
            f"{field} must be between {MIN_GRANT_DAYS} and {MAX_GRANT_DAYS}",
            {"field": field},
        )
    return value


def _plural_days(days: int) -> str:
    return f"{days} day{'s' if days != 1 else ''}"


# ── Lookups ───────────────────────────────────────────────────────────────────


def find_active_grant(user_id: int, project_id: int, now: datetime | None = None):
    """The active, unexpired grant on (user, project), or None."""
    now = now or clock.now()
    stmt = (
        select(TemporaryPermission)
        .where(
            TemporaryPermission.user_id == user_id,
            TemporaryPermission.project_id == project_id,
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at > now,
        )
        .order_by(TemporaryPermission.expires_at.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalar_one_or_none()


def get_grant(grant_id: int) -> dict:
    grant = db.session.get(TemporaryPermission, grant_id)
    if grant is None:
        raise NotFoundError(resource="TemporaryPermission", resource_id=grant_id)
    return grant.to_dict()


def list_active_grants(user_id: int) -> list[dict]:
    """The user's currently valid grants, soonest expiry first."""
    now = clock.now()
    stmt = (
        select(TemporaryPermission)
        .where(
            TemporaryPermission.user_id == user_id,
            TemporaryPermission.is_active.is_(True),
            TemporaryPermission.expires_at > now,
        )
        .order_by(TemporaryPermission.expires_at.asc())
    )
    return [g.to_dict() for g in db.session.execute(stmt).scalars()]


def grants_query(viewer_id: int, *, user_id=None, project_id=None, is_active=None):
    """Filtered grant history query for admins, newest first.

    The caller paginates (see ``app.blueprints.paginate_query``).
    """
    require_grant_admin(viewer_id, "view temporary permissions")
    q = TemporaryPermission.query
    if user_id is not None:
        q = q.filter(TemporaryPermission.user_id == user_id)
    if project_id is not None:
        q = q.filter(TemporaryPermission.project_id == project_id)
    if is_active is not None:
        q = q.filter(TemporaryPermission.is_active.is_(bool(is_active)))
    return q.order_by(TemporaryPermission.created_at.desc(), TemporaryPermission.id.desc())


# ── Grant / revoke ────────────────────────────────────────────────────────────


def upsert_grant(*, user_id: int, project_id: int, granted_by: int,
                 expires_at: datetime, reason: str | None, now: datetime | None = None):
    """Merge into the active grant on (user, project) or insert a new one.

    Does not commit. Returns ``(grant, merged)``.
    """
    existing = find_active_grant(user_id, project_id, now)
    if existing is not None:
        existing.expires_at = expires_at
        existing.granted_by = granted_by
        existing.reason = reason
        return existing, True

    grant = TemporaryPermission(
        user_id=user_id,
        project_id=project_id,
        granted_by=granted_by,
        expires_at=expires_at,
        is_active=True,
        reason=reason,
    )
    db.session.add(grant)
    db.session.flush()
    return grant, False


def grant_permission(
    grantor_id: int,
    user_id: int,
    project_id: int,
    duration_days: int | None = None,
    custom_expiry_date: datetime | None = None,
    reason: str | None = None,
) -> dict:
    """Grant (or extend) task-assignment rights to a developer in one project.

    Args:
        grantor_id:          Acting MANAGER / GROUP_HEAD.
        user_id:             Target developer.
        project_id:          Project the grant applies to.
        duration_days:       1..90, default 7. Ignored when a custom expiry is given.
        custom_expiry_date:  Explicit expiry (local time), must be in the future.
        reason:              Optional free text, at most 500 chars.

    Returns:
        Serialized grant with a ``merged`` flag.

    Raises:
        AuthorizationError: grantor is not MANAGER / GROUP_HEAD.
        ValidationError:    bad duration/reason (kind ValidationError), past
                            expiry (InvalidExpiry), non-developer target
                            (InvalidTarget).
        NotFoundError:      unknown user or project.
    """
    require_grant_admin(grantor_id, "grant temporary permissions")

    now = clock.now()
    if custom_expiry_date is not None:
        expires_at = clock.to_local(custom_expiry_date)
        if expires_at <= now:
            raise ValidationError("Expiry date must be in the future", kind="InvalidExpiry")
    else:
        days = validate_duration(DEFAULT_GRANT_DAYS if duration_days is None else duration_days)
        expires_at = now + timedelta(days=days)

    if reason is not None:
        reason = str(reason).strip() or None
        if reason and len(reason) > GRANT_REASON_MAX_LENGTH:
            raise ValidationError(
                f"reason must be at most {GRANT_REASON_MAX_LENGTH} characters",
                {"field": "reason"},
            )

    target = db.session.get(User, user_id)
    if target is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    if target.user_role is not UserRole.DEVELOPER:
        raise ValidationError(
            "Temporary permissions can only be granted to developers",
            {"user_id": user_id},
            kind="InvalidTarget",
        )
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    grant, merged = upsert_grant(
        user_id=user_id,
        project_id=project_id,
        granted_by=grantor_id,
        expires_at=expires_at,
        reason=reason,
        now=now,
    )

    days = clock.days_until(expires_at, now)
    NotificationService.notify(
        recipient_id=user_id,
        sender_id=grantor_id,
        message=(
            f'You have been granted temporary task assignment permission for project '
            f'"{project.name}" for {_plural_days(days)}. '
            f'This permission expires on {expires_at.date().isoformat()}.'
        ),
        type="PERMISSION_GRANTED",
        related_id=grant.id,
        project_id=project_id,
    )
    db.session.commit()

    logger.info(
        "Temporary permission %s id=%s user_id=%s project_id=%s expires_at=%s by=%s",
        "extended" if merged else "granted",
        grant.id, user_id, project_id, expires_at.isoformat(), grantor_id,
    )
    result = grant.to_dict()
    result["merged"] = merged
    return result


def revoke_permission(grant_id: int, revoker_id: int) -> dict:
    """Deactivate a grant. Revoking an inactive grant is a no-op success."""
    require_grant_admin(revoker_id, "revoke temporary permissions")

    grant = db.session.get(TemporaryPermission, grant_id)
    if grant is None:
        raise NotFoundError(resource="TemporaryPermission", resource_id=grant_id)

    was_active = grant.is_active
    grant.is_active = False

    project_name = grant.project.name if grant.project else "Unknown"
    NotificationService.notify(
        recipient_id=grant.user_id,
        sender_id=revoker_id,
        message=(
            f'Your temporary task assignment permission for project '
            f'"{project_name}" has been revoked.'
        ),
        type="PERMISSION_REVOKED",
        related_id=grant.id,
        project_id=grant.project_id,
    )
    db.session.commit()

    logger.info("Temporary permission revoked id=%s user_id=%s by=%s was_active=%s",
                grant.id, grant.user_id, revoker_id, was_active)
    return grant.to_dict()
