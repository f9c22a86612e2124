"""initial_access_and_eod_schema

Identity tables read by the core (users, projects, project_members, tasks),
temporary access (permission_requests, temporary_permissions), EOD reports
(eod_reports, eod_tasks), notifications and the scheduled job registry.

Revision ID: a1c3e5f70001
Revises:
Create Date: 2024-05-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c3e5f70001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated=True):
    cols = [sa.Column("created_at", sa.DateTime(), nullable=True)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=True))
    return cols


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False),
            *_timestamps(updated=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_role", "users", ["role"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            *_timestamps(updated=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "project_members" not in existing_tables:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("joined_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        )
        op.create_index("ix_project_members_project", "project_members", ["project_id"])
        op.create_index("ix_project_members_user", "project_members", ["user_id"])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("assignee_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assignee_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
        op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
        op.create_index("ix_tasks_status", "tasks", ["status"])

    if "permission_requests" not in existing_tables:
        op.create_table(
            "permission_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("requested_by", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("requested_duration_days", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(length=1000), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("reviewed_by", sa.Integer(), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(), nullable=True),
            sa.Column("review_notes", sa.String(length=500), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["requested_by"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_permission_requests_requested_by", "permission_requests", ["requested_by"])
        op.create_index("ix_permission_requests_project_id", "permission_requests", ["project_id"])
        op.create_index("ix_permission_requests_status", "permission_requests", ["status"])
        op.create_index("ix_permreq_requester_status", "permission_requests",
                        ["requested_by", "status"])
        op.create_index("ix_permreq_project_status", "permission_requests",
                        ["project_id", "status"])

    if "temporary_permissions" not in existing_tables:
        op.create_table(
            "temporary_permissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("granted_by", sa.Integer(), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("reason", sa.String(length=500), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["granted_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_temporary_permissions_user_id", "temporary_permissions", ["user_id"])
        op.create_index("ix_temporary_permissions_project_id", "temporary_permissions",
                        ["project_id"])
        op.create_index("ix_tempperm_lookup", "temporary_permissions",
                        ["user_id", "project_id", "is_active", "expires_at"])
        op.create_index("ix_tempperm_expiry", "temporary_permissions",
                        ["expires_at", "is_active"])

    if "eod_reports" not in existing_tables:
        op.create_table(
            "eod_reports",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("report_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("is_final", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("scheduled_submit_at", sa.DateTime(), nullable=True),
            sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("tasks_in_progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("blockers", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("blockers_text", sa.String(length=500), nullable=True),
            sa.Column("blocked_tasks", sa.JSON(), nullable=False),
            sa.Column("plan_for_tomorrow", sa.String(length=500), nullable=True),
            sa.Column("notes", sa.String(length=1000), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "report_date", name="uq_eod_user_date"),
        )
        op.create_index("ix_eod_reports_user_id", "eod_reports", ["user_id"])
        op.create_index("ix_eod_reports_report_date", "eod_reports", ["report_date"])
        op.create_index("ix_eod_reports_is_final", "eod_reports", ["is_final"])
        op.create_index("ix_eod_reports_scheduled_submit_at", "eod_reports",
                        ["scheduled_submit_at"])
        op.create_index("ix_eod_status_final", "eod_reports", ["status", "is_final"])

    if "eod_tasks" not in existing_tables:
        op.create_table(
            "eod_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("eod_report_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(updated=False),
            sa.ForeignKeyConstraint(["eod_report_id"], ["eod_reports.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("eod_report_id", "task_id", name="uq_eod_task"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_eod_task_progress"),
        )
        op.create_index("ix_eod_tasks_eod_report_id", "eod_tasks", ["eod_report_id"])
        op.create_index("ix_eod_tasks_task_id", "eod_tasks", ["task_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("sender_id", sa.Integer(), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("related_id", sa.Integer(), nullable=True),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(), nullable=True),
            *_timestamps(updated=False),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
        op.create_index("ix_notifications_project_id", "notifications", ["project_id"])
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
        op.create_index("ix_notifications_dedupe", "notifications",
                        ["recipient_id", "type", "related_id", "created_at"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "scheduled_jobs",
        "notifications",
        "eod_tasks",
        "eod_reports",
        "temporary_permissions",
        "permission_requests",
        "tasks",
        "project_members",
        "projects",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
