"""Temporary access blueprint.

Endpoint groups:
  Access decision        POST /api/v1/access/evaluate
  Permission requests    POST/GET /api/v1/permission-requests
                         GET  /api/v1/permission-requests/mine
                         GET  /api/v1/permission-requests/<id>
                         POST /api/v1/permission-requests/<id>/review
  Temporary permissions  POST/GET /api/v1/temporary-permissions
                         GET  /api/v1/temporary-permissions/mine
                         GET  /api/v1/temporary-permissions/<id>
                         POST /api/v1/temporary-permissions/<id>/revoke

The caller is always ``g.current_user``. Role rules are enforced in the
service layer, which also owns all commits. Routes that parse a body
before calling a service gate the caller's role first.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import arg_bool, arg_int, json_body, paginate_query
from app.core.exceptions import NotFoundError, ValidationError
from app.middleware.permission_required import current_user, require_auth, require_roles
from app.models import db
from app.models.auth import GRANT_ADMIN_ROLES, User, UserRole
from app.services import access_decision, grant_service, permission_request_service
from app.utils import clock
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

access_bp = Blueprint("access", __name__, url_prefix="/api/v1")
register_error_handlers(access_bp)


def _required_int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} is required and must be an integer", {"field": key})
    return value


# ═════════════════════════════════════════════════════════════════════════
# Access decision
# ═════════════════════════════════════════════════════════════════════════


@access_bp.route("/access/evaluate", methods=["POST"])
@require_auth
def evaluate_access():
    """May the caller assign a task in ``project_id`` to ``target_user_id``?

    Body: project_id, and either target_user_id (role read from the user
    row) or, for a not-yet-chosen assignee, target_user_role alone.
    """
    data = json_body()
    project_id = _required_int(data, "project_id")
    target_user_id = data.get("target_user_id")
    target_role = data.get("target_user_role")
    if target_user_id is not None or target_role is None:
        target_user_id = _required_int(data, "target_user_id")
        target = db.session.get(User, target_user_id)
        if target is None:
            raise NotFoundError(resource="User", resource_id=target_user_id)
        target_role = target.role

    user = current_user()
    result = access_decision.evaluate_assign_access(
        user.id, user.role, target_user_id, project_id, target_role,
    )
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════
# Permission requests
# ═════════════════════════════════════════════════════════════════════════


@access_bp.route("/permission-requests", methods=["POST"])
@require_roles(UserRole.DEVELOPER)
def create_permission_request():
    data = json_body()
    result = permission_request_service.create_request(
        current_user().id,
        _required_int(data, "project_id"),
        data.get("requested_duration_days"),
        data.get("reason"),
    )
    return jsonify(result), 201


@access_bp.route("/permission-requests", methods=["GET"])
@require_auth
def list_permission_requests():
    """Admin listing. Query params: status, project_id, limit, offset."""
    query = permission_request_service.requests_query(
        current_user().id,
        status=request.args.get("status"),
        project_id=arg_int("project_id"),
    )
    items, total, limit, offset = paginate_query(query)
    return jsonify({
        "items": [r.to_dict() for r in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@access_bp.route("/permission-requests/mine", methods=["GET"])
@require_auth
def my_permission_requests():
    return jsonify({"items": permission_request_service.list_my_requests(current_user().id)}), 200


@access_bp.route("/permission-requests/<int:request_id>", methods=["GET"])
@require_auth
def get_permission_request(request_id):
    result = permission_request_service.get_request(request_id)
    user = current_user()
    if result["requested_by"] != user.id:
        grant_service.require_grant_admin(user.id, "view permission requests")
    return jsonify(result), 200


@access_bp.route("/permission-requests/<int:request_id>/review", methods=["POST"])
@require_auth
def review_permission_request(request_id):
    """Body: status (APPROVED | REJECTED), review_notes (optional)."""
    data = json_body()
    result = permission_request_service.review_request(
        request_id,
        current_user().id,
        data.get("status"),
        data.get("review_notes"),
    )
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════
# Temporary permissions
# ═════════════════════════════════════════════════════════════════════════


@access_bp.route("/temporary-permissions", methods=["POST"])
@require_roles(*GRANT_ADMIN_ROLES)
def grant_permission():
    """Body: user_id, project_id, duration_days | custom_expiry_date, reason."""
    data = json_body()
    user_id = _required_int(data, "user_id")
    project_id = _required_int(data, "project_id")

    custom_expiry = None
    raw_expiry = data.get("custom_expiry_date")
    if raw_expiry is not None:
        try:
            custom_expiry = clock.parse_datetime(raw_expiry) if isinstance(raw_expiry, str) else None
        except ValueError:
            custom_expiry = None
        if custom_expiry is None:
            raise ValidationError(
                "custom_expiry_date must be an ISO datetime", {"field": "custom_expiry_date"},
            )

    result = grant_service.grant_permission(
        current_user().id,
        user_id,
        project_id,
        duration_days=data.get("duration_days"),
        custom_expiry_date=custom_expiry,
        reason=data.get("reason"),
    )
    return jsonify(result), 200 if result["merged"] else 201


@access_bp.route("/temporary-permissions", methods=["GET"])
@require_auth
def list_permissions():
    """Admin listing. Query params: user_id, project_id, is_active, limit, offset."""
    query = grant_service.grants_query(
        current_user().id,
        user_id=arg_int("user_id"),
        project_id=arg_int("project_id"),
        is_active=arg_bool("is_active"),
    )
    items, total, limit, offset = paginate_query(query)
    return jsonify({
        "items": [g.to_dict() for g in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@access_bp.route("/temporary-permissions/mine", methods=["GET"])
@require_auth
def my_permissions():
    return jsonify({"items": grant_service.list_active_grants(current_user().id)}), 200


@access_bp.route("/temporary-permissions/<int:grant_id>", methods=["GET"])
@require_auth
def get_permission(grant_id):
    result = grant_service.get_grant(grant_id)
    user = current_user()
    if result["user_id"] != user.id:
        grant_service.require_grant_admin(user.id, "view temporary permissions")
    return jsonify(result), 200


@access_bp.route("/temporary-permissions/<int:grant_id>/revoke", methods=["POST"])
@require_auth
def revoke_permission(grant_id):
    result = grant_service.revoke_permission(grant_id, current_user().id)
    return jsonify({"message": "Permission revoked successfully", "permission": result}), 200
