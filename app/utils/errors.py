"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Report not found")
    return api_error(E.VALIDATION_REQUIRED, "project_id is required")

Domain exceptions raised by services are rendered by
``register_error_handlers`` so views never build error bodies by hand.
"""

from __future__ import annotations

import logging

from flask import jsonify

from app.core.exceptions import (
    AuthorizationError,
    DomainError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
}

# Exception family → error code (checked in order)
_FAMILY_CODES = (
    (ValidationError, E.VALIDATION_INVALID),
    (StateConflictError, E.CONFLICT_STATE),
    (AuthorizationError, E.FORBIDDEN),
    (NotFoundError, E.NOT_FOUND),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (error kind, offending ids, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def domain_error_response(error: DomainError):
    """Render a service-layer exception as an ``api_error`` tuple."""
    code = E.INTERNAL
    for family, family_code in _FAMILY_CODES:
        if isinstance(error, family):
            code = family_code
            break
    details = {"kind": error.kind, **error.details}
    return api_error(code, error.message, details=details)


def register_error_handlers(blueprint) -> None:
    """Attach DomainError + catch-all handlers to a blueprint."""

    @blueprint.errorhandler(DomainError)
    def _handle_domain(error: DomainError):
        db.session.rollback()
        logger.info("%s rejected: kind=%s message=%s",
                    blueprint.name, error.kind, error.message)
        return domain_error_response(error)

    @blueprint.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        from flask import request
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", blueprint.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
