"""Accounts, entitlement records, roles, operator notifications and the webhook ledger.

Idempotent: app startup may already have created the tables via create_all.

Revision ID: 001_entitlement_tables
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_entitlement_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _has_table(name: str) -> bool:
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade() -> None:
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("supabase_id", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("full_name", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_users_supabase_id", "users", ["supabase_id"], unique=True)
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _has_table("profiles"):
        op.create_table(
            "profiles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
            sa.Column("trial_active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("trial_expires_at", sa.DateTime(), nullable=True),
            sa.Column("subscription_active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("access_authorized", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("contract_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("pricing_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if not _has_table("user_roles"):
        op.create_table(
            "user_roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),
        )
        op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])
        op.create_index("ix_user_roles_role", "user_roles", ["role"])

    if not _has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("reference_id", sa.String(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    if not _has_table("processed_webhook_events"):
        op.create_table(
            "processed_webhook_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("event_id", sa.String(), nullable=False),
            sa.Column("event_type", sa.String(), nullable=False),
            sa.Column("payment_id", sa.String(), nullable=True),
            sa.Column("customer_email", sa.String(), nullable=True),
            sa.Column("processed_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        )
        op.create_index("ix_processed_webhook_events_event_id", "processed_webhook_events", ["event_id"], unique=True)


def downgrade() -> None:
    op.drop_table("processed_webhook_events")
    op.drop_table("notifications")
    op.drop_table("user_roles")
    op.drop_table("profiles")
    op.drop_table("users")
