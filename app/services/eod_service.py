"""End-of-day report lifecycle.

One report per (user, local calendar day), DRAFT → SUBMITTED, sealed by the
one-way ``is_final`` flag the midnight finalizer sets.

Rules:
  - Only DEVELOPERs author reports.
  - Check order on every mutation: author role → payload validation →
    finality of the existing report (ReportFinal) → report date is today
    (WrongDate) → every referenced task is accessible (TaskNotAccessible)
    → write.
  - Submit is ensure-draft followed by promote; there is no separate
    "create and submit" path.
  - When a payload carries task lists, the report's EODTask rows are
    replaced wholesale and the counters recomputed.
  - Last write wins: there is no version check on concurrent edits.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models import db
from app.models.auth import GRANT_ADMIN_ROLES, User, UserRole
from app.models.eod import (
    BLOCKERS_TEXT_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    PLAN_MAX_LENGTH,
    EODReport,
    EODStatus,
    EODTask,
    EODTaskStatus,
)
from app.models.task import Task
from app.services import task_access
from app.utils import clock

logger = logging.getLogger(__name__)

_TEXT_FIELDS = {
    "blockers_text": BLOCKERS_TEXT_MAX_LENGTH,
    "plan_for_tomorrow": PLAN_MAX_LENGTH,
    "notes": NOTES_MAX_LENGTH,
}


# ═══════════════════════════════════════════════════════════════
# Editability
# ═══════════════════════════════════════════════════════════════


def is_report_editable(report: EODReport, now: datetime | None = None) -> bool:
    """Not final, and either a draft or submitted before the day's cutoff."""
    if report.is_final:
        return False
    if report.status == EODStatus.DRAFT.value:
        return True
    now = now or clock.now()
    return report.status == EODStatus.SUBMITTED.value and now <= clock.end_of_day(report.report_date)


# ═══════════════════════════════════════════════════════════════
# Payload validation
# ═══════════════════════════════════════════════════════════════


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _task_id(entry, field: str) -> int:
    raw = entry.get("task_id") if isinstance(entry, dict) else entry
    if not _is_int(raw) or raw <= 0:
        raise ValidationError(f"{field} entries must reference a task id", {"field": field})
    return raw


def _id_list(data: dict, field: str):
    if field not in data or data[field] is None:
        return None
    value = data[field]
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", {"field": field})
    return value


def parse_payload(data: dict, *, submit: bool = False, now: datetime | None = None) -> dict:
    """Validate a draft/submit payload without touching the database.

    Returns a dict holding only the keys the caller supplied, normalised:
    ``report_date`` (date), ``completed`` (list of ids), ``in_progress``
    (list of ``(id, progress)``), ``blocked_tasks``, the text fields, and for
    submits ``submit_now`` / ``scheduled_submit_at``.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    now = now or clock.now()
    edits: dict = {}

    raw_date = data.get("report_date")
    if raw_date is not None:
        if not isinstance(raw_date, str):
            raise ValidationError("report_date must be an ISO date", {"field": "report_date"})
        try:
            edits["report_date"] = clock.parse_date(raw_date)
        except ValueError:
            raise ValidationError("report_date must be an ISO date", {"field": "report_date"})

    completed = _id_list(data, "completed_tasks")
    in_progress = _id_list(data, "in_progress_tasks")
    if completed is not None or in_progress is not None:
        completed_ids = [_task_id(e, "completed_tasks") for e in completed or []]
        in_progress_rows = []
        for entry in in_progress or []:
            if not isinstance(entry, dict):
                raise ValidationError(
                    "in_progress_tasks entries must be objects with task_id and progress",
                    {"field": "in_progress_tasks"},
                )
            task_id = _task_id(entry, "in_progress_tasks")
            progress = entry.get("progress", 0)
            # JSON clients may send 40.0
            if isinstance(progress, float) and progress.is_integer():
                progress = int(progress)
            if not _is_int(progress) or not 0 <= progress <= 100:
                raise ValidationError(
                    "progress must be a whole number between 0 and 100",
                    {"field": "in_progress_tasks", "task_id": task_id},
                )
            in_progress_rows.append((task_id, progress))

        all_ids = completed_ids + [tid for tid, _ in in_progress_rows]
        duplicates = sorted({tid for tid in all_ids if all_ids.count(tid) > 1})
        if duplicates:
            raise ValidationError(
                "A task can appear only once per report",
                {"task_ids": duplicates},
            )
        edits["completed"] = completed_ids
        edits["in_progress"] = in_progress_rows

    blocked = _id_list(data, "blocked_tasks")
    if blocked is not None:
        edits["blocked_tasks"] = [_task_id(e, "blocked_tasks") for e in blocked]

    for field, max_length in _TEXT_FIELDS.items():
        if field not in data:
            continue
        value = data[field]
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be a string", {"field": field})
        if value is not None and len(value) > max_length:
            raise ValidationError(
                f"{field} must be at most {max_length} characters", {"field": field},
            )
        edits[field] = value

    if submit:
        submit_now = data.get("submit_now", True)
        if not isinstance(submit_now, bool):
            raise ValidationError("submit_now must be a boolean", {"field": "submit_now"})
        edits["submit_now"] = submit_now
        if not submit_now:
            edits["scheduled_submit_at"] = _parse_schedule(data.get("scheduled_submit_at"), now)

    return edits


def _parse_schedule(raw, now: datetime) -> datetime:
    if not raw:
        raise ValidationError(
            "scheduled_submit_at is required when submit_now is false",
            {"field": "scheduled_submit_at"},
        )
    try:
        when = clock.parse_datetime(raw) if isinstance(raw, str) else None
    except ValueError:
        when = None
    if when is None:
        raise ValidationError(
            "scheduled_submit_at must be an ISO datetime", {"field": "scheduled_submit_at"},
        )
    if when <= now:
        raise ValidationError(
            "Scheduled submission time must be in the future",
            {"field": "scheduled_submit_at"},
        )
    if when > clock.end_of_day(now):
        raise ValidationError(
            "Scheduled submission must be before end of day (11:59 PM)",
            {"field": "scheduled_submit_at"},
        )
    return when


# ═══════════════════════════════════════════════════════════════
# Internal steps
# ═══════════════════════════════════════════════════════════════


def _require_author(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or user.user_role is not UserRole.DEVELOPER:
        raise AuthorizationError(
            "InsufficientPermissions", "Only developers can create or submit EOD reports",
        )
    return user


def _find_report(user_id: int, report_date: date) -> EODReport | None:
    stmt = select(EODReport).where(
        EODReport.user_id == user_id,
        EODReport.report_date == report_date,
    )
    return db.session.execute(stmt).scalar_one_or_none()


def _check_mutable(user_id: int, edits: dict, now: datetime) -> EODReport | None:
    """Finality, date and task-access checks shared by draft and submit."""
    today = now.date()
    report_date = edits.get("report_date", today)

    existing = _find_report(user_id, report_date)
    if existing is not None and existing.is_final:
        raise StateConflictError(
            "ReportFinal",
            "EOD report is final and cannot be modified",
            {"report_id": existing.id},
        )
    if report_date != today:
        raise StateConflictError(
            "WrongDate",
            "EOD reports can only be created or submitted for today",
            {"report_date": report_date.isoformat(), "today": today.isoformat()},
        )
    if existing is not None and not is_report_editable(existing, now):
        raise StateConflictError(
            "ReportFinal", "The edit window for this report has closed",
            {"report_id": existing.id},
        )

    referenced = edits.get("completed", []) + [tid for tid, _ in edits.get("in_progress", [])]
    offending = task_access.inaccessible_task_ids(user_id, referenced)
    if offending:
        raise AuthorizationError(
            "TaskNotAccessible",
            "You do not have access to the following tasks: "
            + ", ".join(str(tid) for tid in offending),
            {"task_ids": offending},
        )
    return existing


def _ensure_draft(user_id: int, report_date: date, existing: EODReport | None) -> EODReport:
    """Return today's report, inserting an empty DRAFT if there is none."""
    if existing is not None:
        return existing
    try:
        with db.session.begin_nested():
            report = EODReport(
                user_id=user_id,
                report_date=report_date,
                status=EODStatus.DRAFT.value,
                is_final=False,
                blocked_tasks=[],
            )
            db.session.add(report)
        return report
    except IntegrityError:
        # Created concurrently by another request for the same day
        report = _find_report(user_id, report_date)
        if report is None:
            raise
        logger.info("EOD report for user_id=%s date=%s created concurrently; reusing id=%s",
                    user_id, report_date, report.id)
        return report


def _replace_tasks(report: EODReport, completed: list[int], in_progress: list[tuple[int, int]]) -> None:
    db.session.execute(delete(EODTask).where(EODTask.eod_report_id == report.id))
    for task_id in completed:
        db.session.add(EODTask(
            eod_report_id=report.id, task_id=task_id,
            status=EODTaskStatus.COMPLETED.value, progress=100,
        ))
    for task_id, progress in in_progress:
        db.session.add(EODTask(
            eod_report_id=report.id, task_id=task_id,
            status=EODTaskStatus.IN_PROGRESS.value, progress=progress,
        ))
    db.session.flush()
    db.session.expire(report, ["tasks"])
    report.tasks_completed = len(completed)
    report.tasks_in_progress = len(in_progress)


def _apply_edits(report: EODReport, edits: dict) -> None:
    if "completed" in edits:
        _replace_tasks(report, edits["completed"], edits["in_progress"])
    if "blocked_tasks" in edits:
        report.blocked_tasks = edits["blocked_tasks"]
    for field in _TEXT_FIELDS:
        if field in edits:
            setattr(report, field, edits[field])
    report.blockers = max(len(report.blocked_tasks or []), 1 if report.blockers_text else 0)


def _promote(report: EODReport, now: datetime) -> None:
    report.status = EODStatus.SUBMITTED.value
    report.submitted_at = now
    report.scheduled_submit_at = None


def _serialize(report: EODReport, now: datetime) -> dict:
    result = report.to_dict()
    result["editable"] = is_report_editable(report, now)
    return result


# ═══════════════════════════════════════════════════════════════
# Public operations
# ═══════════════════════════════════════════════════════════════


def save_draft(user_id: int, data: dict) -> dict:
    """Create or update today's report without changing its status.

    Raises:
        AuthorizationError:  not a developer; task outside the accessible set.
        ValidationError:     malformed payload.
        StateConflictError:  ReportFinal, WrongDate.
    """
    _require_author(user_id)
    now = clock.now()
    edits = parse_payload(data, now=now)
    existing = _check_mutable(user_id, edits, now)

    report = _ensure_draft(user_id, now.date(), existing)
    _apply_edits(report, edits)
    db.session.commit()

    logger.info("EOD draft saved id=%s user_id=%s completed=%s in_progress=%s",
                report.id, user_id, report.tasks_completed, report.tasks_in_progress)
    return _serialize(report, now)


def submit_report(user_id: int, data: dict) -> dict:
    """Submit today's report now, or schedule it for later today.

    With ``submit_now`` (default) the report becomes SUBMITTED immediately.
    Otherwise it stays DRAFT with ``scheduled_submit_at`` set, and the
    scheduled-submission sweep promotes it.

    Raises:
        AuthorizationError:  not a developer; task outside the accessible set.
        ValidationError:     malformed payload or bad schedule time.
        StateConflictError:  ReportFinal, WrongDate, AlreadySubmitted (when
                             scheduling a report that is already submitted).
    """
    _require_author(user_id)
    now = clock.now()
    edits = parse_payload(data, submit=True, now=now)
    existing = _check_mutable(user_id, edits, now)
    if (not edits["submit_now"] and existing is not None
            and existing.status == EODStatus.SUBMITTED.value):
        raise StateConflictError(
            "AlreadySubmitted",
            "Report is already submitted; resubmit with submit_now instead of scheduling",
            {"report_id": existing.id},
        )

    report = _ensure_draft(user_id, now.date(), existing)
    _apply_edits(report, edits)
    if edits["submit_now"]:
        _promote(report, now)
    else:
        report.scheduled_submit_at = edits["scheduled_submit_at"]
    db.session.commit()

    if edits["submit_now"]:
        logger.info("EOD report submitted id=%s user_id=%s", report.id, user_id)
    else:
        logger.info("EOD report scheduled id=%s user_id=%s at=%s",
                    report.id, user_id, report.scheduled_submit_at.isoformat())
    return _serialize(report, now)


def get_today_report(user_id: int) -> dict:
    """Today's report (or None) plus the task status projection for the form."""
    now = clock.now()
    report = _find_report(user_id, now.date())
    changed = task_access.tasks_with_status_changes(user_id)
    result = {
        "report": None,
        "tasks_with_status_changes": {
            "completed": [t for t in changed if t["status"] == "DONE"],
            "in_progress": [t for t in changed if t["status"] == "IN_PROGRESS"],
        },
        "editable": True,
        "time_until_end_of_day": None,
    }
    if report is None:
        return result

    editable = is_report_editable(report, now)
    result["report"] = report.to_dict()
    result["editable"] = editable
    if editable and report.status == EODStatus.SUBMITTED.value:
        remaining_ms = int((clock.end_of_day(now) - now).total_seconds() * 1000)
        result["time_until_end_of_day"] = {
            "hours": remaining_ms // 3_600_000,
            "minutes": (remaining_ms % 3_600_000) // 60_000,
            "total_ms": remaining_ms,
        }
    return result


def reports_query(viewer_id: int, *, user_id=None, start_date=None, end_date=None):
    """Role-scoped report history, newest day first. The caller paginates.

    DEVELOPER sees only their own reports; TEAM_LEAD their own or a named
    user's; GROUP_HEAD and MANAGER everything.
    """
    viewer = db.session.get(User, viewer_id)
    role = viewer.user_role if viewer else None
    if role is None:
        raise AuthorizationError("InsufficientPermissions", "Unknown role")

    q = EODReport.query
    if role is UserRole.DEVELOPER:
        q = q.filter(EODReport.user_id == viewer_id)
    elif role is UserRole.TEAM_LEAD:
        q = q.filter(EODReport.user_id == (user_id or viewer_id))
    elif user_id:
        q = q.filter(EODReport.user_id == user_id)

    if start_date is not None:
        q = q.filter(EODReport.report_date >= start_date)
    if end_date is not None:
        q = q.filter(EODReport.report_date <= end_date)
    return q.order_by(EODReport.report_date.desc(), EODReport.id.desc())


def get_report(viewer_id: int, report_id: int) -> dict:
    report = db.session.get(EODReport, report_id)
    if report is None:
        raise NotFoundError(resource="EODReport", resource_id=report_id)
    viewer = db.session.get(User, viewer_id)
    if viewer is None or (viewer.user_role is UserRole.DEVELOPER and report.user_id != viewer_id):
        raise AuthorizationError(
            "InsufficientPermissions", "You can only view your own EOD reports",
        )
    return _serialize(report, clock.now())


def _task_line(task: Task | None, task_id, progress=None) -> dict:
    line = {
        "task_id": task_id,
        "title": task.title if task else f"Task {task_id}",
        "type": (task.type if task else None) or "TASK",
        "priority": (task.priority if task else None) or "MEDIUM",
        "project_name": task.project.name if task and task.project else None,
    }
    if progress is not None:
        line["progress"] = progress
    return line


def reports_summary(viewer_id: int, *, user_id=None, start_date=None, end_date=None) -> dict:
    """Manager overview of submitted and scheduled reports with task drill-down.

    GROUP_HEAD and MANAGER only. Without a date range the summary covers
    today. Plain drafts are left out; a scheduled draft counts as pending
    submission and is included.
    """
    viewer = db.session.get(User, viewer_id)
    if viewer is None or viewer.user_role not in GRANT_ADMIN_ROLES:
        raise AuthorizationError(
            "InsufficientPermissions", "Only Group Heads and Managers can view EOD summaries",
        )
    if start_date is None and end_date is None:
        start_date = end_date = clock.now().date()

    q = EODReport.query.filter(or_(
        EODReport.status == EODStatus.SUBMITTED.value,
        and_(EODReport.status == EODStatus.DRAFT.value,
             EODReport.scheduled_submit_at.isnot(None)),
    ))
    if user_id:
        q = q.filter(EODReport.user_id == user_id)
    if start_date is not None:
        q = q.filter(EODReport.report_date >= start_date)
    if end_date is not None:
        q = q.filter(EODReport.report_date <= end_date)
    reports = q.order_by(EODReport.report_date.desc(), EODReport.user_id).all()

    blocked_ids = {tid for r in reports for tid in (r.blocked_tasks or [])}
    blocked_tasks = {}
    if blocked_ids:
        blocked_tasks = {
            t.id: t for t in db.session.execute(
                select(Task).where(Task.id.in_(blocked_ids))
            ).scalars()
        }

    data = []
    for report in reports:
        completed = [_task_line(et.task, et.task_id, et.progress) for et in report.tasks
                     if et.status == EODTaskStatus.COMPLETED.value]
        in_progress = [_task_line(et.task, et.task_id, et.progress) for et in report.tasks
                       if et.status == EODTaskStatus.IN_PROGRESS.value]
        blocked = [_task_line(blocked_tasks.get(tid), tid) for tid in report.blocked_tasks or []]
        data.append({
            "user_id": report.user_id,
            "user_name": report.user.name if report.user else None,
            "user_email": report.user.email if report.user else None,
            "report_date": report.report_date.isoformat(),
            "report_id": report.id,
            "status": report.status,
            "completed": len(completed),
            "in_progress": len(in_progress),
            "blockers": len(blocked) or report.blockers or 0,
            "has_blockers": bool(report.blockers_text),
            "blockers_text": report.blockers_text,
            "plan_for_tomorrow": report.plan_for_tomorrow,
            "notes": report.notes,
            "submitted_at": report.submitted_at.isoformat() if report.submitted_at else None,
            "scheduled_submit_at": (
                report.scheduled_submit_at.isoformat() if report.scheduled_submit_at else None
            ),
            "is_scheduled": report.is_scheduled,
            "tasks": {"completed": completed, "in_progress": in_progress, "blocked": blocked},
        })
    return {"data": data, "total": len(data)}
