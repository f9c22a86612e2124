"""
JWT Auth Middleware: Parses JWT from Authorization header, sets g.current_user.

The role always comes from the stored User row, never from the token, so a
role change takes effect on the next request.

Invalid or missing tokens leave ``g.current_user`` as None; routes guarded
by ``require_auth`` then answer 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.models import db
from app.models.auth import User
from app.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_user_id = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
            user_id = int(payload.get("sub"))
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired JWT on %s", path)
            return
        except (pyjwt.InvalidTokenError, TypeError, ValueError):
            logger.debug("Invalid JWT on %s", path)
            return

        g.jwt_user_id = user_id
        g.current_user = db.session.get(User, user_id)
