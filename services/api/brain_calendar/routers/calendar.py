"""Calendar routes: event listing, policy updates and provider ingestion."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.dependencies import get_current_user_id, get_db
from brain_calendar.metrics import ingested_events_total
from brain_calendar.schemas.calendar import CalendarEventRead, PolicyUpdateRequest
from brain_calendar.schemas.ingest import IngestBatchRequest, IngestBatchResponse
from brain_calendar.services.calendar_service import CalendarService
from brain_calendar.services.ingestion import IngestionService
from brain_calendar.services.time_windows import InvalidTimeRangeError, TimeRange

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/events", response_model=list[CalendarEventRead])
async def list_events(
    start_at: int = Query(..., description="Range start, epoch milliseconds"),
    end_at: int = Query(..., description="Range end, epoch milliseconds"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List the current user's events intersecting ``[start_at, end_at]``."""
    try:
        window = TimeRange.from_bounds(start_at, end_at)
    except InvalidTimeRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    events = await CalendarService().list_events(db, user_id, window.start_at, window.end_at)
    return [CalendarEventRead.model_validate(e) for e in events]


@router.put("/events/{event_id}/policy", response_model=CalendarEventRead)
async def update_event_policy(
    event_id: uuid.UUID,
    body: PolicyUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Replace an event's AI-scheduling policy."""
    event = await CalendarService().update_event_policy(db, user_id, event_id, body.policy)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return CalendarEventRead.model_validate(event)


@router.post("/ingest", response_model=IngestBatchResponse)
async def ingest_events(
    body: IngestBatchRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Ingest a batch of provider events.

    Each event is cleaned under the supplied consent snapshot before it is
    stored. Rejected events are reported per index; they do not fail the batch.
    """
    results = await IngestionService().ingest_events_batch(db, user_id, body.events, body.consent)
    for r in results:
        ingested_events_total.labels(status=r.status).inc()
    return IngestBatchResponse(results=results)
