"""Add notification dispatch tables.

Revision ID: 5a3e0c9d71b4
Revises:
Create Date: 2026-10-12 09:40:12.118406
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5a3e0c9d71b4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "push_subscriptions",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("user_id", sa.Text(), nullable=True),
    sa.Column("user_email", sa.Text(), nullable=True),
    sa.Column("endpoint", sa.Text(), nullable=False),
    sa.Column("p256dh", sa.Text(), nullable=False),
    sa.Column("auth", sa.Text(), nullable=False),
    sa.Column("preferences", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
    sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
    sa.Column("last_notification_sent_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ux_push_subscriptions_endpoint", "push_subscriptions", ["endpoint"], unique=True)
  op.create_index("ix_push_subscriptions_active", "push_subscriptions", ["is_active"], unique=False)
  op.create_index(op.f("ix_push_subscriptions_user_id"), "push_subscriptions", ["user_id"], unique=False)

  op.create_table(
    "notification_sent_events",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("date", sa.Date(), nullable=False),
    sa.Column("event_key", sa.Text(), nullable=False),
    sa.Column("event_type", sa.Text(), nullable=False),
    sa.Column("event_name", sa.Text(), nullable=False),
    sa.Column("event_priority", sa.Integer(), nullable=False),
    sa.Column("sent_by", sa.Text(), nullable=False),
    sa.Column("status", sa.Text(), server_default="in_progress", nullable=False),
    sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("date", "event_key", name="uq_notification_sent_events_date_key"),
  )
  op.create_index(op.f("ix_notification_sent_events_date"), "notification_sent_events", ["date"], unique=False)
  op.create_index("ix_notification_sent_events_sent_at", "notification_sent_events", ["sent_at"], unique=False)

  op.create_table(
    "user_profiles",
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("name", sa.Text(), nullable=True),
    sa.Column("birthday", sa.Date(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("user_id"),
  )

  op.create_table(
    "billing_subscriptions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("status", sa.Text(), server_default="free", nullable=False),
    sa.Column("plan_type", sa.Text(), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_billing_subscriptions_user_id"), "billing_subscriptions", ["user_id"], unique=True)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_billing_subscriptions_user_id"), table_name="billing_subscriptions")
  op.drop_table("billing_subscriptions")
  op.drop_table("user_profiles")
  op.drop_index("ix_notification_sent_events_sent_at", table_name="notification_sent_events")
  op.drop_index(op.f("ix_notification_sent_events_date"), table_name="notification_sent_events")
  op.drop_table("notification_sent_events")
  op.drop_index(op.f("ix_push_subscriptions_user_id"), table_name="push_subscriptions")
  op.drop_index("ix_push_subscriptions_active", table_name="push_subscriptions")
  op.drop_index("ux_push_subscriptions_endpoint", table_name="push_subscriptions")
  op.drop_table("push_subscriptions")
