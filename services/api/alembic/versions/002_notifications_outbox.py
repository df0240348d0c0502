"""Add notifications outbox for approval requests.

Revision ID: 002_notifications_outbox
Revises: 001_initial
Create Date: 2026-10-18 00:00:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "002_notifications_outbox"
down_revision = "001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    notification_channel = postgresql.ENUM(
        "email", "push", "sms", "in_app", name="notification_channel", create_type=False
    )
    notification_channel.create(op.get_bind())
    outbox_status = postgresql.ENUM(
        "pending", "sent", "failed", "cancelled", name="outbox_status", create_type=False
    )
    outbox_status.create(op.get_bind())

    op.create_table(
        "notifications_outbox",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column(
            "proposal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("reschedule_proposals.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("channel", notification_channel, nullable=False),
        sa.Column("recipient", sa.String(320), nullable=False),
        sa.Column("template_id", sa.String(100), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.Column("status", outbox_status, nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notifications_outbox_user_id", "notifications_outbox", ["user_id"])
    op.create_index("ix_notifications_outbox_proposal_id", "notifications_outbox", ["proposal_id"])
    op.create_index("ix_notifications_outbox_status_created", "notifications_outbox", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("notifications_outbox")
    op.execute("DROP TYPE IF EXISTS outbox_status")
    op.execute("DROP TYPE IF EXISTS notification_channel")
