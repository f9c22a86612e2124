"""
Worktrack Platform
End-of-day report models.

Models:
    - EODReport: one report per user per local calendar day
    - EODTask: task lines (completed / in-progress) attached to a report
    - EODReminder: daily "please submit" reminder log

Lifecycle: DRAFT → SUBMITTED, plus the one-way ``is_final`` seal set by the
midnight finalizer. A final report never changes again.
"""

import enum

from app.models import db
from app.utils import clock


# ── Constants ────────────────────────────────────────────────────────────────

BLOCKERS_TEXT_MAX_LENGTH = 500
PLAN_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 1000


class EODStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"


class EODTaskStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    IN_PROGRESS = "IN_PROGRESS"


class EODReport(db.Model):
    """Daily status report."""

    __tablename__ = "eod_reports"
    __table_args__ = (
        db.UniqueConstraint("user_id", "report_date", name="uq_eod_user_date"),
        db.Index("ix_eod_status_final", "status", "is_final"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    report_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=EODStatus.DRAFT.value)
    is_final = db.Column(db.Boolean, nullable=False, default=False, index=True)
    submitted_at = db.Column(db.DateTime, nullable=True)
    scheduled_submit_at = db.Column(db.DateTime, nullable=True, index=True)

    # Denormalised counts, recomputed whenever task lists are replaced
    tasks_completed = db.Column(db.Integer, nullable=False, default=0)
    tasks_in_progress = db.Column(db.Integer, nullable=False, default=0)
    blockers = db.Column(db.Integer, nullable=False, default=0)

    blockers_text = db.Column(db.String(BLOCKERS_TEXT_MAX_LENGTH), nullable=True)
    blocked_tasks = db.Column(db.JSON, nullable=False, default=list)
    plan_for_tomorrow = db.Column(db.String(PLAN_MAX_LENGTH), nullable=True)
    notes = db.Column(db.String(NOTES_MAX_LENGTH), nullable=True)

    created_at = db.Column(db.DateTime, default=lambda: clock.now())
    updated_at = db.Column(db.DateTime, default=lambda: clock.now(),
                           onupdate=lambda: clock.now())

    user = db.relationship("User")
    tasks = db.relationship(
        "EODTask", back_populates="report", lazy="select",
        cascade="all, delete-orphan", order_by="EODTask.id",
    )

    @property
    def is_scheduled(self):
        return self.status == EODStatus.DRAFT.value and self.scheduled_submit_at is not None

    def to_dict(self, include_tasks=True):
        d = {
            "id": self.id,
            "user_id": self.user_id,
            "report_date": self.report_date.isoformat() if self.report_date else None,
            "status": self.status,
            "is_final": self.is_final,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "scheduled_submit_at": (
                self.scheduled_submit_at.isoformat() if self.scheduled_submit_at else None
            ),
            "is_scheduled": self.is_scheduled,
            "tasks_completed": self.tasks_completed,
            "tasks_in_progress": self.tasks_in_progress,
            "blockers": self.blockers,
            "blockers_text": self.blockers_text,
            "blocked_tasks": list(self.blocked_tasks or []),
            "plan_for_tomorrow": self.plan_for_tomorrow,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d

    def __repr__(self):
        return f"<EODReport {self.id} user={self.user_id} {self.report_date} [{self.status}]>"


class EODTask(db.Model):
    """A task line inside an EOD report. COMPLETED always carries progress 100."""

    __tablename__ = "eod_tasks"
    __table_args__ = (
        db.UniqueConstraint("eod_report_id", "task_id", name="uq_eod_task"),
        db.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_eod_task_progress"),
    )

    id = db.Column(db.Integer, primary_key=True)
    eod_report_id = db.Column(
        db.Integer, db.ForeignKey("eod_reports.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False)
    progress = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=lambda: clock.now())

    report = db.relationship("EODReport", back_populates="tasks")
    task = db.relationship("Task")

    def to_dict(self):
        return {
            "task_id": self.task_id,
            "status": self.status,
            "progress": self.progress,
            "task": self.task.to_summary() if self.task else None,
        }


class EODReminder(db.Model):
    """One row per (user, day) a reminder was sent; keeps the reminder sweep idempotent."""

    __tablename__ = "eod_reminders"
    __table_args__ = (
        db.UniqueConstraint("user_id", "reminder_date", name="uq_eod_reminder_user_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    reminder_date = db.Column(db.Date, nullable=False, index=True)
    sent_at = db.Column(db.DateTime, nullable=False, default=lambda: clock.now())
    created_at = db.Column(db.DateTime, default=lambda: clock.now())

    def __repr__(self):
        return f"<EODReminder user={self.user_id} {self.reminder_date}>"
