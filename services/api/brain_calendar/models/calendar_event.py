"""Calendar event model. Times are epoch milliseconds."""

from sqlalchemy import BigInteger, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from brain_calendar.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CalendarEvent(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "calendar_events"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", "provider_event_id", name="uq_calendar_events_provider_id"),
        Index("ix_calendar_events_user_time", "user_id", "start_at", "end_at"),
        CheckConstraint("end_at > start_at", name="ck_calendar_events_positive_duration"),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default="manual")
    provider_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    location: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    start_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    # policy JSONB stores an EventPolicy dump, or NULL when the user never set one
    policy: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    attendees: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    organizer: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    visibility: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deleted_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<CalendarEvent {self.id} [{self.start_at}, {self.end_at})>"
