"""Add profile sync outbox

Revision ID: 002_profile_sync
Revises: 001_initial
Create Date: 2026-10-14

Name and email edits now enqueue a task that copies the new values into
every team the user belongs to; the task is retried until it succeeds.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002_profile_sync"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the profile_sync_tasks table."""
    op.create_table(
        "profile_sync_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("team_ids", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profile_sync_tasks_user_id", "profile_sync_tasks", ["user_id"])
    op.create_index("ix_profile_sync_tasks_status", "profile_sync_tasks", ["status"])


def downgrade() -> None:
    """Drop the profile_sync_tasks table."""
    op.drop_index("ix_profile_sync_tasks_status", table_name="profile_sync_tasks")
    op.drop_index("ix_profile_sync_tasks_user_id", table_name="profile_sync_tasks")
    op.drop_table("profile_sync_tasks")
