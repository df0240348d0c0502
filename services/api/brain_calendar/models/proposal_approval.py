"""Append-only record of decisions taken on reschedule proposals."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from brain_calendar.models.base import Base, UUIDPrimaryKeyMixin


class ProposalApproval(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "proposal_approvals"

    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reschedule_proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)  # e.g. "external_link", "in_app"
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    chosen_option_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProposalApproval {self.decision} proposal={self.proposal_id}>"
