"""add_eod_reminders

Daily EOD reminder log, one row per developer per day.

Revision ID: b2d4f6a80002
Revises: a1c3e5f70001
Create Date: 2024-05-06 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "b2d4f6a80002"
down_revision = "a1c3e5f70001"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    if "eod_reminders" in sa_inspect(bind).get_table_names():
        return

    op.create_table(
        "eod_reminders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("reminder_date", sa.Date(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "reminder_date", name="uq_eod_reminder_user_date"),
    )
    op.create_index("ix_eod_reminders_user_id", "eod_reminders", ["user_id"])
    op.create_index("ix_eod_reminders_reminder_date", "eod_reminders", ["reminder_date"])


def downgrade():
    bind = op.get_bind()
    if "eod_reminders" in sa_inspect(bind).get_table_names():
        op.drop_table("eod_reminders")
