"""Outbound notification queue drained by an external delivery worker."""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from brain_calendar.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_values


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"
    IN_APP = "in_app"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationOutbox(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "notifications_outbox"
    __table_args__ = (Index("ix_notifications_outbox_status_created", "status", "created_at"),)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    proposal_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reschedule_proposals.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel, name="notification_channel", values_callable=enum_values),
        nullable=False,
    )
    recipient: Mapped[str] = mapped_column(String(320), nullable=False)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(OutboxStatus, name="outbox_status", values_callable=enum_values),
        default=OutboxStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationOutbox {self.id} {self.template_id}>"
