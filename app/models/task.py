"""
Worktrack Platform
Task model.

Tasks are created and edited by the task service; the EOD core reads them to
build a user's accessible task set and the "today" status projection.
"""

from app.models import db
from app.utils import clock


TASK_STATUSES = {"TODO", "IN_PROGRESS", "IN_REVIEW", "DONE", "BLOCKED"}


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assignee_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    status = db.Column(db.String(20), default="TODO", index=True)
    type = db.Column(db.String(30), default="TASK")
    priority = db.Column(db.String(20), default="MEDIUM")
    created_at = db.Column(db.DateTime, default=lambda: clock.now())
    updated_at = db.Column(db.DateTime, default=lambda: clock.now(),
                           onupdate=lambda: clock.now())

    project = db.relationship("Project")

    def to_summary(self):
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "type": self.type,
            "priority": self.priority,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]}>"
