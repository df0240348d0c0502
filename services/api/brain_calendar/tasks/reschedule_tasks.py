"""Celery tasks driving the periodic reschedule loop."""

import asyncio
import logging

from celery import shared_task
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from brain_calendar.config import get_settings
from brain_calendar.models.base import now_ms
from brain_calendar.models.calendar_event import CalendarEvent
from brain_calendar.services.orchestrator import DAY_MS, RescheduleOrchestrator
from brain_calendar.services.proposal_lifecycle import ProposalService

logger = logging.getLogger(__name__)


def _get_async_session() -> async_sessionmaker:
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    return async_sessionmaker(engine, expire_on_commit=False)


async def _run_for_user(user_id: str) -> dict:
    settings = get_settings()
    orchestrator = RescheduleOrchestrator(_get_async_session(), settings)
    report = await orchestrator.run_for_user(user_id)
    return {
        "user_id": user_id,
        "proposed": report.proposed,
        "failed": len(report.failed),
        "timed_out": report.timed_out,
    }


async def _users_with_upcoming_events() -> list[str]:
    settings = get_settings()
    now = now_ms()
    horizon_end = now + settings.horizon_days * DAY_MS
    session_factory = _get_async_session()
    async with session_factory() as db:
        result = await db.execute(
            select(distinct(CalendarEvent.user_id)).where(
                CalendarEvent.deleted_at.is_(None),
                CalendarEvent.start_at < horizon_end,
                CalendarEvent.end_at > now,
            )
        )
        return list(result.scalars().all())


async def _expire_stale() -> int:
    settings = get_settings()
    session_factory = _get_async_session()
    async with session_factory() as db:
        count = await ProposalService(settings).expire_stale_proposals(db)
        await db.commit()
        return count


@shared_task(name="brain_calendar.tasks.reschedule_tasks.run_reschedule_for_user")
def run_reschedule_for_user(user_id: str) -> dict:
    """Run one orchestration cycle for a user.

    Failed events are retried on the next scheduled run, not here.
    """
    return asyncio.run(_run_for_user(user_id))


@shared_task(name="brain_calendar.tasks.reschedule_tasks.dispatch_reschedule_runs")
def dispatch_reschedule_runs() -> int:
    """Periodic task: enqueue a reschedule cycle for every user with upcoming events."""
    user_ids = asyncio.run(_users_with_upcoming_events())
    for user_id in user_ids:
        run_reschedule_for_user.delay(user_id=user_id)
    logger.info("Dispatched reschedule runs for %d user(s)", len(user_ids))
    return len(user_ids)


@shared_task(name="brain_calendar.tasks.reschedule_tasks.expire_stale_proposals")
def expire_stale_proposals() -> int:
    """Periodic task: expire sent proposals past their approval deadline."""
    return asyncio.run(_expire_stale())
