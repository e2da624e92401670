"""Pending orders table.

One row per order email awaiting a reply. Rows are deleted when the reply
arrives; last_reminder_at records the latest "no answer yet" reminder.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pending_orders",
        sa.Column("partition_key", sa.String(32), nullable=False),
        sa.Column("tracking_id", sa.String(96), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("email_sent_to", sa.String(320), nullable=False),
        sa.Column("email_subject", sa.String(500), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("email_message_id", sa.String(255), nullable=True),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_pending_orders_partition_key", "pending_orders", ["partition_key"])


def downgrade() -> None:
    op.drop_index("ix_pending_orders_partition_key", table_name="pending_orders")
    op.drop_table("pending_orders")
