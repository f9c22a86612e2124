"""EOD report sweeps.

    sweep_scheduled_submissions   DRAFT with scheduled_submit_at <= now → SUBMITTED (every minute)
    force_end_of_day_submissions  every DRAFT of today → SUBMITTED (23:59)
    finalize_yesterday            yesterday's SUBMITTED → is_final (00:00:01)
    send_eod_reminders            nudge developers with nothing submitted today (18:30 Mon-Fri)

Selection predicates exclude already-transitioned rows, so re-running a
sweep is a no-op. Each row is re-read and committed on its own; a failing
row is rolled back and logged and the sweep continues.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from app.models import db
from app.models.auth import User, UserRole
from app.models.eod import EODReminder, EODReport, EODStatus
from app.services.notification import NotificationService
from app.utils import clock

logger = logging.getLogger(__name__)


def _run_per_row(label: str, ids, still_matches, apply) -> dict:
    processed = 0
    errors = 0
    for report_id in ids:
        try:
            report = db.session.get(EODReport, report_id, populate_existing=True)
            if report is None or not still_matches(report):
                continue
            apply(report)
            db.session.commit()
            processed += 1
            logger.debug("%s: report id=%s user_id=%s", label, report.id, report.user_id)
        except Exception:
            db.session.rollback()
            errors += 1
            logger.exception("%s failed for report id=%s", label, report_id)
    if processed or errors:
        logger.info("%s: processed=%d errors=%d", label, processed, errors)
    return {"processed": processed, "errors": errors}


def _submit(now: datetime):
    def apply(report: EODReport) -> None:
        report.status = EODStatus.SUBMITTED.value
        report.submitted_at = now
        report.scheduled_submit_at = None
    return apply


def sweep_scheduled_submissions(now: datetime | None = None) -> dict:
    """Promote scheduled drafts whose time has come."""
    now = now or clock.now()
    ids = db.session.execute(
        select(EODReport.id).where(
            EODReport.status == EODStatus.DRAFT.value,
            EODReport.is_final.is_(False),
            EODReport.scheduled_submit_at.isnot(None),
            EODReport.scheduled_submit_at <= now,
        )
    ).scalars().all()

    def still_matches(report):
        return (report.status == EODStatus.DRAFT.value and not report.is_final
                and report.scheduled_submit_at is not None
                and report.scheduled_submit_at <= now)

    result = _run_per_row("Scheduled EOD submission", ids, still_matches, _submit(now))
    return {"submitted_count": result["processed"], "errors": result["errors"]}


def force_end_of_day_submissions(now: datetime | None = None) -> dict:
    """Submit every remaining draft dated today, scheduled or not."""
    now = now or clock.now()
    today = now.date()
    ids = db.session.execute(
        select(EODReport.id).where(
            EODReport.report_date == today,
            EODReport.status == EODStatus.DRAFT.value,
            EODReport.is_final.is_(False),
        )
    ).scalars().all()

    def still_matches(report):
        return (report.report_date == today and report.status == EODStatus.DRAFT.value
                and not report.is_final)

    result = _run_per_row("End-of-day EOD submission", ids, still_matches, _submit(now))
    return {"submitted_count": result["processed"], "errors": result["errors"]}


def finalize_yesterday(now: datetime | None = None) -> dict:
    """Seal yesterday's submitted reports. Drafts are left as they are."""
    now = now or clock.now()
    yesterday = now.date() - timedelta(days=1)
    ids = db.session.execute(
        select(EODReport.id).where(
            EODReport.report_date == yesterday,
            EODReport.status == EODStatus.SUBMITTED.value,
            EODReport.is_final.is_(False),
        )
    ).scalars().all()

    def still_matches(report):
        return (report.report_date == yesterday and report.status == EODStatus.SUBMITTED.value
                and not report.is_final)

    def seal(report):
        report.is_final = True

    result = _run_per_row("EOD finalization", ids, still_matches, seal)
    return {"finalized_count": result["processed"], "errors": result["errors"]}


EOD_REMINDER_MESSAGE = "Please submit your EOD report for today."


def send_eod_reminders(now: datetime | None = None) -> dict:
    """Notify developers without a SUBMITTED report today, once per day.

    The EODReminder row and the notification commit together, so a user is
    either fully reminded or retried on the next run.
    """
    now = now or clock.now()
    today = now.date()
    submitted = select(EODReport.user_id).where(
        EODReport.report_date == today,
        EODReport.status == EODStatus.SUBMITTED.value,
    )
    reminded = select(EODReminder.user_id).where(EODReminder.reminder_date == today)
    user_ids = db.session.execute(
        select(User.id).where(
            User.role == UserRole.DEVELOPER.value,
            User.id.notin_(submitted),
            User.id.notin_(reminded),
        ).order_by(User.id)
    ).scalars().all()

    sent = 0
    errors = 0
    for user_id in user_ids:
        try:
            db.session.add(EODReminder(user_id=user_id, reminder_date=today, sent_at=now))
            NotificationService.notify(
                recipient_id=user_id,
                message=EOD_REMINDER_MESSAGE,
                type="EOD_REMINDER",
            )
            db.session.commit()
            sent += 1
        except Exception:
            db.session.rollback()
            errors += 1
            logger.exception("EOD reminder failed for user_id=%s", user_id)
    if sent or errors:
        logger.info("EOD reminders: sent=%d errors=%d", sent, errors)
    return {"sent_count": sent, "errors": errors}
