"""Initial schema: calendar events, reschedule proposals, ingestion log.

Revision ID: 001_initial
Revises:
Create Date: 2026-09-01 00:00:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- calendar_events ---
    op.create_table(
        "calendar_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False, server_default="manual"),
        sa.Column("provider_event_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(1024), nullable=True),
        sa.Column("location", sa.String(1024), nullable=True),
        sa.Column("start_at", sa.BigInteger, nullable=False),
        sa.Column("end_at", sa.BigInteger, nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("policy", postgresql.JSONB, nullable=True),
        sa.Column("attendees", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("organizer", postgresql.JSONB, nullable=True),
        sa.Column("visibility", sa.String(20), nullable=True),
        sa.Column("deleted_at", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("end_at > start_at", name="ck_calendar_events_positive_duration"),
    )
    op.create_index("ix_calendar_events_user_id", "calendar_events", ["user_id"])
    op.create_index("ix_calendar_events_user_time", "calendar_events", ["user_id", "start_at", "end_at"])
    op.create_unique_constraint(
        "uq_calendar_events_provider_id", "calendar_events", ["user_id", "provider", "provider_event_id"]
    )

    # --- reschedule_proposals ---
    proposal_creator = postgresql.ENUM("user", "brain", "system", name="proposal_creator", create_type=False)
    proposal_creator.create(op.get_bind())
    proposal_status = postgresql.ENUM(
        "draft", "sent", "approved", "rejected", "applied", "expired", name="proposal_status", create_type=False
    )
    proposal_status.create(op.get_bind())

    op.create_table(
        "reschedule_proposals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column(
            "event_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("calendar_events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_by", proposal_creator, nullable=False),
        sa.Column("status", proposal_status, nullable=False, server_default="draft"),
        sa.Column("rationale", sa.Text, nullable=False),
        sa.Column("options", postgresql.JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("chosen_option_index", sa.Integer, nullable=True),
        sa.Column("requires_approver", sa.Boolean, nullable=False),
        sa.Column("approver", postgresql.JSONB, nullable=True),
        sa.Column("token_hash", sa.String(64), nullable=True, unique=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_reschedule_proposals_user_id", "reschedule_proposals", ["user_id"])
    op.create_index("ix_reschedule_proposals_event_id", "reschedule_proposals", ["event_id"])
    op.create_index("ix_reschedule_proposals_status", "reschedule_proposals", ["status"])
    # At most one unresolved proposal per event
    op.create_index(
        "uq_reschedule_proposals_unresolved_event",
        "reschedule_proposals",
        ["event_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('draft', 'sent')"),
    )

    # --- proposal_approvals ---
    op.create_table(
        "proposal_approvals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "proposal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("reschedule_proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("chosen_option_index", sa.Integer, nullable=True),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_proposal_approvals_proposal_id", "proposal_approvals", ["proposal_id"])

    # --- ingested_events ---
    brain_status = postgresql.ENUM("pending", "skipped", name="brain_status", create_type=False)
    brain_status.create(op.get_bind())

    op.create_table(
        "ingested_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("cleaned", postgresql.JSONB, nullable=False),
        sa.Column("brain_status", brain_status, nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ingested_events_user_id", "ingested_events", ["user_id"])
    op.create_index("ix_ingested_events_event_type", "ingested_events", ["event_type"])
    op.create_unique_constraint("uq_ingested_events_idempotency", "ingested_events", ["user_id", "idempotency_key"])

    # --- audit_log ---
    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.String(255), nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("ingested_events")
    op.execute("DROP TYPE IF EXISTS brain_status")
    op.drop_table("proposal_approvals")
    op.drop_index("uq_reschedule_proposals_unresolved_event", table_name="reschedule_proposals")
    op.drop_table("reschedule_proposals")
    op.execute("DROP TYPE IF EXISTS proposal_status")
    op.execute("DROP TYPE IF EXISTS proposal_creator")
    op.drop_table("calendar_events")
