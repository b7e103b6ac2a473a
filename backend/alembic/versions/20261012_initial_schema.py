"""Initial database schema

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-12

Creates the four aggregates:
- User accounts with embedded team memberships
- Teams with embedded members and billing identifiers
- Invitations
- Activity logs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # User accounts table
    op.create_table(
        "user_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("team_memberships", sa.JSON(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_user_accounts_active_email",
        "user_accounts",
        ["email"],
        unique=True,
        sqlite_where=sa.text("deleted_at IS NULL"),
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("ix_user_accounts_active_created", "user_accounts", ["deleted_at", "created_at"])
    op.create_index("ix_user_accounts_role", "user_accounts", ["role", "deleted_at"])

    # Teams table
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("team_members", sa.JSON(), nullable=False),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("stripe_product_id", sa.String(255), nullable=True),
        sa.Column("plan_name", sa.String(50), nullable=True),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_customer_id"),
        sa.UniqueConstraint("stripe_subscription_id"),
    )
    op.create_index("ix_teams_plan_name", "teams", ["plan_name"])
    op.create_index("ix_teams_subscription_status", "teams", ["subscription_status", "updated_at"])
    op.create_index("ix_teams_created", "teams", ["created_at"])

    # Invitations table
    op.create_table(
        "invitations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("invited_by", sa.Integer(), nullable=False),
        sa.Column("invited_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("team_name", sa.String(100), nullable=True),
        sa.Column("invited_by_name", sa.String(100), nullable=True),
        sa.Column("invited_by_email", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invitations_team_id", "invitations", ["team_id"])
    op.create_index(
        "uq_invitations_pending",
        "invitations",
        ["email", "team_id"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index("ix_invitations_email_status", "invitations", ["email", "status"])
    op.create_index("ix_invitations_team_status", "invitations", ["team_id", "status", "invited_at"])

    # Activity logs table
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_name", sa.String(100), nullable=True),
        sa.Column("user_email", sa.String(255), nullable=True),
        sa.Column("team_name", sa.String(100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_activity_logs_timestamp", "activity_logs", ["timestamp"])
    op.create_index("ix_activity_logs_user_time", "activity_logs", ["user_id", "timestamp"])
    op.create_index("ix_activity_logs_team_time", "activity_logs", ["team_id", "timestamp"])
    op.create_index("ix_activity_logs_action_time", "activity_logs", ["action", "timestamp"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("activity_logs")
    op.drop_table("invitations")
    op.drop_table("teams")
    op.drop_table("user_accounts")
