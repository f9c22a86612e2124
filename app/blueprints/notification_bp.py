"""
Worktrack Platform
Notification & Scheduling Blueprint.

Provides:
    - The caller's in-app notifications (list, mark read)
    - Task viewing heartbeats (used to suppress notifications to viewers)
    - Scheduled job management (list, trigger, toggle) for MANAGER / GROUP_HEAD
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import arg_bool
from app.core.exceptions import NotFoundError, ValidationError
from app.middleware.permission_required import current_user, require_auth, require_roles
from app.models import db
from app.models.auth import GRANT_ADMIN_ROLES
from app.models.task import Task
from app.services import viewing_tracker
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService, get_registered_jobs
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_auth
def list_notifications():
    """Caller's notifications, newest first. Query: unread_only, limit, offset."""
    try:
        limit = min(max(int(request.args.get("limit", 50)), 1), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except ValueError:
        raise ValidationError("limit and offset must be integers")

    user_id = current_user().id
    items, total = NotificationService.list_for_recipient(
        user_id,
        unread_only=bool(arg_bool("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_auth
def mark_notification_read(nid):
    notif = NotificationService.mark_read(nid, current_user().id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=nid)
    return jsonify(notif.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  TASK VIEWING HEARTBEATS
# ═══════════════════════════════════════════════════════════════════════════

def _require_task(task_id):
    if db.session.get(Task, task_id) is None:
        raise NotFoundError(resource="Task", resource_id=task_id)


@notification_bp.route("/tasks/<int:task_id>/viewing", methods=["POST"])
@require_auth
def mark_viewing(task_id):
    """Heartbeat: the caller currently has the task open."""
    _require_task(task_id)
    ttl = viewing_tracker.mark_viewing(task_id, current_user().id)
    return jsonify({"task_id": task_id, "viewing": True, "ttl_seconds": ttl})


@notification_bp.route("/tasks/<int:task_id>/viewing", methods=["DELETE"])
@require_auth
def clear_viewing(task_id):
    viewing_tracker.mark_not_viewing(task_id, current_user().id)
    return jsonify({"task_id": task_id, "viewing": False})


@notification_bp.route("/tasks/<int:task_id>/viewers", methods=["GET"])
@require_auth
def list_viewers(task_id):
    _require_task(task_id)
    return jsonify({"task_id": task_id, "user_ids": viewing_tracker.viewers_of(task_id)})


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS MANAGEMENT
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
@require_roles(*GRANT_ADMIN_ROLES)
def list_scheduled_jobs():
    """List all registered jobs with their DB status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@notification_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
@require_roles(*GRANT_ADMIN_ROLES)
def get_job_status(job_name):
    status = SchedulerService.get_job_status(job_name)
    if status is None:
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    return jsonify(status)


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
@require_roles(*GRANT_ADMIN_ROLES)
def trigger_job(job_name):
    """Manually trigger a sweep."""
    if job_name not in get_registered_jobs():
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    result = SchedulerService.run_job(job_name)
    logger.info("Job %s triggered by user %s: %s", job_name, current_user().id, result["status"])
    return jsonify(result)


@notification_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
@require_roles(*GRANT_ADMIN_ROLES)
def toggle_job_status(job_name):
    """Enable or disable a scheduled job. Body: {"enabled": bool}."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        raise ValidationError("'enabled' field is required (true/false)", {"field": "enabled"})

    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    return jsonify(result)
