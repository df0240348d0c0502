"""Calendar event storage: range queries, policy updates and provider upserts."""

import logging
import uuid
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.models.base import now_ms
from brain_calendar.models.calendar_event import CalendarEvent
from brain_calendar.schemas.calendar import DEFAULT_IMPORTED_POLICY, EventPolicy
from brain_calendar.schemas.cleaned_event import CleanedEvent
from brain_calendar.services.audit_service import write_audit_log

logger = logging.getLogger(__name__)


class CalendarService:
    """Reads and writes the calendar events the planner works from."""

    async def list_events(
        self,
        db: AsyncSession,
        user_id: str,
        start_at: int,
        end_at: int,
    ) -> Sequence[CalendarEvent]:
        """Live events whose range intersects ``[start_at, end_at]``, by start time."""
        result = await db.execute(
            select(CalendarEvent)
            .where(
                CalendarEvent.user_id == user_id,
                CalendarEvent.deleted_at.is_(None),
                CalendarEvent.start_at < end_at,
                CalendarEvent.end_at > start_at,
            )
            .order_by(CalendarEvent.start_at, CalendarEvent.id)
        )
        return result.scalars().all()

    async def get_event(self, db: AsyncSession, user_id: str, event_id: uuid.UUID) -> CalendarEvent | None:
        result = await db.execute(
            select(CalendarEvent).where(
                CalendarEvent.id == event_id,
                CalendarEvent.user_id == user_id,
                CalendarEvent.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def update_event_policy(
        self,
        db: AsyncSession,
        user_id: str,
        event_id: uuid.UUID,
        policy: EventPolicy,
    ) -> CalendarEvent | None:
        """Replace an event's policy wholesale.

        In-flight proposals keep the approval requirement they were created with.
        """
        event = await self.get_event(db, user_id, event_id)
        if event is None:
            return None

        previous = (event.policy or {}).get("lock_state")
        event.policy = policy.model_dump(mode="json")
        await db.flush()

        await write_audit_log(
            db=db,
            user_id=user_id,
            action="event.policy_updated",
            entity_type="calendar_event",
            entity_id=str(event.id),
            metadata={"previous_lock_state": previous, "lock_state": policy.lock_state},
        )
        return event

    async def upsert_from_cleaned(self, db: AsyncSession, user_id: str, cleaned: CleanedEvent) -> CalendarEvent:
        """Insert or update an event from a cleaned ``calendar.event.upserted`` record.

        Only what survived cleaning is stored, so redacted fields never reach
        the planner.
        """
        content = cleaned.content
        time = content["time"]
        participants = cleaned.entities.get("participants") or {}
        organizer_email = participants.get("organizerEmail")

        values = {
            "title": content.get("title"),
            "location": content.get("location"),
            "start_at": time["startAtMs"],
            "end_at": time["endAtMs"],
            "timezone": time.get("tz") or "UTC",
            "attendees": [{"email": e} for e in participants.get("attendeeEmails", [])],
            "organizer": {"email": organizer_email} if organizer_email else None,
            "deleted_at": None,
        }

        result = await db.execute(
            select(CalendarEvent).where(
                CalendarEvent.user_id == user_id,
                CalendarEvent.provider == cleaned.source.provider,
                CalendarEvent.provider_event_id == cleaned.event.id,
            )
        )
        event = result.scalar_one_or_none()
        if event is None:
            event = CalendarEvent(
                user_id=user_id,
                provider=cleaned.source.provider,
                provider_event_id=cleaned.event.id,
                visibility="private",
                policy=DEFAULT_IMPORTED_POLICY.model_dump(mode="json"),
                **values,
            )
            db.add(event)
        else:
            for key, value in values.items():
                setattr(event, key, value)
        await db.flush()
        return event

    async def mark_deleted(
        self,
        db: AsyncSession,
        user_id: str,
        provider: str,
        provider_event_id: str,
    ) -> bool:
        """Soft-delete an event. Returns False if it was unknown."""
        result = await db.execute(
            select(CalendarEvent).where(
                CalendarEvent.user_id == user_id,
                CalendarEvent.provider == provider,
                CalendarEvent.provider_event_id == provider_event_id,
            )
        )
        event = result.scalar_one_or_none()
        if event is None:
            return False
        event.deleted_at = now_ms()
        await db.flush()
        logger.info("Soft-deleted event %s for user=%s", event.id, user_id[:8])
        return True
