"""Assign-access decisions.

Answers "may this actor assign tasks in this project (to this user)?".
Priority: role → temporary grant → deny. Read-only; never mutates state.
"""

from __future__ import annotations

from app.models.auth import ASSIGNING_ROLES, UserRole
from app.services.grant_service import find_active_grant

NO_PERMISSION_MESSAGE = (
    "You do not have permission to assign tasks. Please request temporary "
    "assignment permission from a Group Head or Manager."
)


def _deny(reason: str, message: str) -> dict:
    return {"allowed": False, "reason": reason, "message": message}


def can_assign_tasks(user_id: int, role, project_id: int) -> dict:
    """Base check, without any constraint on the assignee."""
    role = UserRole.parse(role)
    if role in ASSIGNING_ROLES:
        return {"allowed": True}

    if role is UserRole.DEVELOPER:
        if find_active_grant(user_id, project_id) is not None:
            return {"allowed": True}
        return _deny("NoPermission", NO_PERMISSION_MESSAGE)

    return _deny("NoPermission", "Insufficient permissions")


def evaluate_assign_access(
    actor_id: int,
    actor_role,
    target_user_id: int | None,
    target_project_id: int,
    target_user_role,
) -> dict:
    """Decide whether ``actor`` may assign a task in ``target_project_id`` to ``target_user``.

    Returns ``{"allowed": True}`` or ``{"allowed": False, "reason", "message"}``
    where reason is ``InvalidTarget`` or ``NoPermission``.
    """
    if UserRole.parse(target_user_role) is not UserRole.DEVELOPER:
        return _deny("InvalidTarget", "Tasks can only be assigned to developers")
    return can_assign_tasks(actor_id, actor_role, target_project_id)

