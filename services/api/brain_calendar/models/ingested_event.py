"""Append-only log of provider events after cleaning."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from brain_calendar.models.base import Base, UUIDPrimaryKeyMixin, enum_values


class BrainStatus(str, enum.Enum):
    PENDING = "pending"
    SKIPPED = "skipped"


class IngestedEvent(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "ingested_events"
    __table_args__ = (UniqueConstraint("user_id", "idempotency_key", name="uq_ingested_events_idempotency"),)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # Only the cleaned envelope is kept; raw provider payloads may carry
    # content the user did not consent to share.
    cleaned: Mapped[dict] = mapped_column(JSONB, nullable=False)
    brain_status: Mapped[BrainStatus] = mapped_column(
        Enum(BrainStatus, name="brain_status", values_callable=enum_values),
        nullable=False,
    )
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<IngestedEvent {self.event_type} user_id={self.user_id}>"
