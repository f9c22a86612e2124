"""
Route guards for the JWT-authenticated user.

Usage:
    @bp.route("/eod-reports/today", methods=["GET"])
    @require_auth
    def today():
        ...

    @bp.route("/scheduler/jobs/<job_name>/run", methods=["POST"])
    @require_roles(UserRole.MANAGER, UserRole.GROUP_HEAD)
    def run_job(job_name):
        ...

Fine-grained domain rules (who may grant, review, author a report) live in
the services; these decorators only cover identity and coarse role gates.
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    return getattr(g, "current_user", None)


def require_auth(f):
    """Decorator: 401 unless a valid Bearer token resolved to a known user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_roles(*roles):
    """Decorator: authenticated user must hold one of ``roles``."""
    allowed = {getattr(r, "value", r) for r in roles}

    def decorator(f):
        @functools.wraps(f)
        @require_auth
        def decorated(*args, **kwargs):
            user = current_user()
            if user.role not in allowed:
                logger.warning(
                    "User %d denied: role %s not in %s on %s",
                    user.id, user.role, sorted(allowed), f.__name__,
                )
                return api_error(
                    E.FORBIDDEN, "Permission denied",
                    details={"kind": "InsufficientPermissions", "required_roles": sorted(allowed)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator
