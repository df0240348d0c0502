"""Reschedule proposal model and its lifecycle states."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from brain_calendar.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values


class ProposalStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"
    EXPIRED = "expired"


class ProposalCreator(str, enum.Enum):
    USER = "user"
    BRAIN = "brain"
    SYSTEM = "system"


UNRESOLVED_STATUSES = (ProposalStatus.DRAFT, ProposalStatus.SENT)


class RescheduleProposal(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "reschedule_proposals"
    __table_args__ = (
        # At most one unresolved proposal per event
        Index(
            "uq_reschedule_proposals_unresolved_event",
            "event_id",
            unique=True,
            postgresql_where=text("status IN ('draft', 'sent')"),
        ),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("calendar_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by: Mapped[ProposalCreator] = mapped_column(
        Enum(ProposalCreator, name="proposal_creator", values_callable=enum_values),
        nullable=False,
    )
    status: Mapped[ProposalStatus] = mapped_column(
        Enum(ProposalStatus, name="proposal_status", values_callable=enum_values),
        default=ProposalStatus.DRAFT,
        nullable=False,
        index=True,
    )
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    # options JSONB stores a best-first list of
    # {"start_at": ms, "end_at": ms, "score": int, "explain": "string"}
    options: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    chosen_option_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_approver: Mapped[bool] = mapped_column(Boolean, nullable=False)
    approver: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<RescheduleProposal {self.id} status={self.status}>"
