"""Task / project accessibility lookups used by the EOD report core.

A user's *accessible task set* is every task assigned to them plus every
task in a project they are a member of.
"""

from __future__ import annotations

from sqlalchemy import or_, select

from app.models import db
from app.models.auth import ProjectMember
from app.models.task import Task

# Task statuses surfaced in the "today" projection
STATUS_CHANGE_STATUSES = ("DONE", "IN_PROGRESS")


def accessible_task_ids(user_id: int) -> set[int]:
    """Ids of tasks assigned to the user or in one of the user's projects."""
    projects = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    stmt = select(Task.id).where(
        or_(Task.assignee_id == user_id, Task.project_id.in_(projects))
    )
    return set(db.session.execute(stmt).scalars())


def inaccessible_task_ids(user_id: int, task_ids) -> list[int]:
    """Return the subset of ``task_ids`` the user may not reference, sorted."""
    wanted = set(task_ids)
    if not wanted:
        return []
    return sorted(wanted - accessible_task_ids(user_id))


def tasks_with_status_changes(user_id: int) -> list[dict]:
    """Caller's assigned tasks currently DONE or IN_PROGRESS, newest change first."""
    stmt = (
        select(Task)
        .where(
            Task.assignee_id == user_id,
            Task.status.in_(STATUS_CHANGE_STATUSES),
        )
        .order_by(Task.updated_at.desc(), Task.id.desc())
    )
    return [t.to_summary() for t in db.session.execute(stmt).scalars()]
