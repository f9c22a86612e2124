"""End-of-day report blueprint.

Endpoints:
  GET  /api/v1/eod-reports          role-scoped history (user_id, start_date, end_date, limit, offset)
  GET  /api/v1/eod-reports/today    caller's report for today + task status projection
  GET  /api/v1/eod-reports/summary  manager overview (user_id, start_date, end_date)
  POST /api/v1/eod-reports/draft    create or update today's draft
  POST /api/v1/eod-reports/submit   submit now or schedule for later today
  GET  /api/v1/eod-reports/<id>     single report
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import arg_int, json_body, paginate_query
from app.core.exceptions import ValidationError
from app.middleware.permission_required import current_user, require_auth, require_roles
from app.models.auth import GRANT_ADMIN_ROLES
from app.services import eod_service
from app.utils import clock
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

eod_bp = Blueprint("eod", __name__, url_prefix="/api/v1/eod-reports")
register_error_handlers(eod_bp)


def _arg_date(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return clock.parse_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date", {"field": name})


@eod_bp.route("", methods=["GET"])
@require_auth
def list_reports():
    query = eod_service.reports_query(
        current_user().id,
        user_id=arg_int("user_id"),
        start_date=_arg_date("start_date"),
        end_date=_arg_date("end_date"),
    )
    items, total, limit, offset = paginate_query(query)
    return jsonify({
        "items": [r.to_dict() for r in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@eod_bp.route("/today", methods=["GET"])
@require_auth
def today_report():
    return jsonify(eod_service.get_today_report(current_user().id)), 200


@eod_bp.route("/summary", methods=["GET"])
@require_roles(*GRANT_ADMIN_ROLES)
def reports_summary():
    return jsonify(eod_service.reports_summary(
        current_user().id,
        user_id=arg_int("user_id"),
        start_date=_arg_date("start_date"),
        end_date=_arg_date("end_date"),
    )), 200


@eod_bp.route("/draft", methods=["POST"])
@require_auth
def save_draft():
    return jsonify(eod_service.save_draft(current_user().id, json_body())), 200


@eod_bp.route("/submit", methods=["POST"])
@require_auth
def submit_report():
    return jsonify(eod_service.submit_report(current_user().id, json_body())), 200


@eod_bp.route("/<int:report_id>", methods=["GET"])
@require_auth
def get_report(report_id):
    return jsonify(eod_service.get_report(current_user().id, report_id)), 200
