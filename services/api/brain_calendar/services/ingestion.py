"""Batch ingestion of provider events into the append-only event log."""

import logging
import uuid
from typing import Sequence

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.models.base import now_ms
from brain_calendar.models.ingested_event import IngestedEvent
from brain_calendar.schemas.cleaned_event import ConsentScopes
from brain_calendar.schemas.ingest import (
    CalendarEventDeletedPayload,
    CalendarEventPayload,
    IngestEventIn,
    IngestResult,
)
from brain_calendar.services.calendar_service import CalendarService
from brain_calendar.services.event_cleaning import (
    CleanParams,
    UnregisteredEventTypeError,
    clean_event_v1,
    lookup_cleaner,
)

logger = logging.getLogger(__name__)

EVENT_UPSERTED = "calendar.event.upserted"
EVENT_DELETED = "calendar.event.deleted"

# Payload schemas enforced before cleaning, per event type
PAYLOAD_SCHEMAS = {
    EVENT_UPSERTED: CalendarEventPayload,
    EVENT_DELETED: CalendarEventDeletedPayload,
}


class IngestionService:
    """Validate, clean and append provider events; keep calendar_events in sync."""

    def __init__(self, calendar_service: CalendarService | None = None) -> None:
        self._calendar = calendar_service or CalendarService()

    async def _find_duplicate(self, db: AsyncSession, user_id: str, idempotency_key: str) -> IngestedEvent | None:
        result = await db.execute(
            select(IngestedEvent).where(
                IngestedEvent.user_id == user_id,
                IngestedEvent.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    async def ingest_events_batch(
        self,
        db: AsyncSession,
        user_id: str,
        events: Sequence[IngestEventIn],
        consent: ConsentScopes,
    ) -> list[IngestResult]:
        """Ingest events one by one. A rejected event does not stop the batch."""
        results: list[IngestResult] = []

        for index, item in enumerate(events):
            if item.idempotency_key:
                existing = await self._find_duplicate(db, user_id, item.idempotency_key)
                if existing is not None:
                    results.append(IngestResult(index=index, status="duplicate", event_id=str(existing.id)))
                    continue

            try:
                entry = lookup_cleaner(item.event_type)
            except UnregisteredEventTypeError as e:
                logger.warning("Rejected event %d for user=%s: %s", index, user_id[:8], e)
                results.append(IngestResult(index=index, status="rejected", error="unregistered_event_type"))
                continue

            schema = PAYLOAD_SCHEMAS.get(item.event_type)
            if schema is not None:
                try:
                    schema.model_validate(item.payload)
                except ValidationError as e:
                    logger.warning(
                        "Rejected %s event %d for user=%s: %d validation error(s)",
                        item.event_type,
                        index,
                        user_id[:8],
                        e.error_count(),
                    )
                    results.append(IngestResult(index=index, status="rejected", error="invalid_payload"))
                    continue

            row_id = uuid.uuid4()
            cleaned = clean_event_v1(
                CleanParams(
                    clerk_user_id=user_id,
                    source_event_id=str(row_id),
                    event_type=item.event_type,
                    occurred_at_ms=now_ms(),
                    payload=item.payload,
                ),
                consent,
            )
            db.add(
                IngestedEvent(
                    id=row_id,
                    user_id=user_id,
                    event_type=item.event_type,
                    cleaned=cleaned.to_record(),
                    brain_status=entry.default_brain_status,
                    idempotency_key=item.idempotency_key,
                )
            )

            if item.event_type == EVENT_UPSERTED:
                await self._calendar.upsert_from_cleaned(db, user_id, cleaned)
            elif item.event_type == EVENT_DELETED:
                await self._calendar.mark_deleted(
                    db,
                    user_id,
                    provider=cleaned.source.provider,
                    provider_event_id=cleaned.event.id,
                )
            await db.flush()

            results.append(IngestResult(index=index, status="created", event_id=str(row_id)))

        logger.info(
            "Ingested batch for user=%s: %d created, %d duplicate, %d rejected",
            user_id[:8],
            sum(r.status == "created" for r in results),
            sum(r.status == "duplicate" for r in results),
            sum(r.status == "rejected" for r in results),
        )
        return results
