"""Create ``conversations`` and ``messages`` tables for customer chats."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001_create_conversation_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create conversation tables plus the one-active-per-phone index."""

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_phone", sa.String(length=64), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column(
            "control_mode",
            sa.String(length=16),
            nullable=False,
            server_default=sa.text("'auto'"),
        ),
        sa.Column("assigned_agent", sa.String(length=255), nullable=True),
        sa.Column("behavior_settings", postgresql.JSONB(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "needs_human_attention",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "resolved",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("handoff_reason", sa.Text(), nullable=True),
        sa.Column("handoff_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manual_mode_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_agent_activity", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_message_time",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "control_mode IN ('auto', 'manual', 'paused')",
            name="ck_conversations_control_mode",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'closed')", name="ck_conversations_status"
        ),
        sa.CheckConstraint(
            "platform IN ('web', 'sms')", name="ck_conversations_platform"
        ),
    )
    op.create_index(
        "ix_conversations_active_phone_unique",
        "conversations",
        ["customer_phone"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "ix_conversations_last_message_time",
        "conversations",
        ["last_message_time"],
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id",
            sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("sender", sa.String(length=16), nullable=False),
        sa.Column("from_customer", sa.Boolean(), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("clock_timestamp()"),
        ),
        sa.CheckConstraint(
            "sender IN ('customer', 'ai', 'agent')", name="ck_messages_sender"
        ),
    )
    op.create_index(
        "ix_messages_conversation_timestamp",
        "messages",
        ["conversation_id", "timestamp", "id"],
    )


def downgrade() -> None:
    """Remove ``messages`` and ``conversations`` tables and related indexes."""

    op.drop_index("ix_messages_conversation_timestamp", table_name="messages")
    op.drop_table("messages")

    op.drop_index("ix_conversations_last_message_time", table_name="conversations")
    op.drop_index("ix_conversations_active_phone_unique", table_name="conversations")
    op.drop_table("conversations")
