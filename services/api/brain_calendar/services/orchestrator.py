"""Per-user orchestration loop: find movable events and send reschedule proposals."""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from brain_calendar.config import Settings
from brain_calendar.metrics import proposals_total, reschedule_cycle_duration_seconds, reschedule_cycles_total
from brain_calendar.models.base import now_ms as current_ms
from brain_calendar.models.reschedule_proposal import ProposalCreator
from brain_calendar.schemas.calendar import CalendarEventRead, requires_approver
from brain_calendar.services.calendar_service import CalendarService
from brain_calendar.services.notification_outbox import enqueue_approval_request
from brain_calendar.services.planner import propose_reschedule, should_move_event
from brain_calendar.services.proposal_lifecycle import ProposalService
from brain_calendar.services.time_windows import MINUTE_MS, TimeRange

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * MINUTE_MS


@dataclass
class CycleReport:
    """What one orchestration run did for one user."""

    user_id: str
    proposed: int = 0
    skipped_locked: int = 0
    skipped_existing: int = 0
    skipped_no_candidates: int = 0
    approval_requests: int = 0
    failed: list[str] = field(default_factory=list)
    timed_out: bool = False

    @property
    def outcome(self) -> str:
        if self.timed_out:
            return "timeout"
        return "partial" if self.failed else "ok"


class RescheduleOrchestrator:
    """Runs the planner over a user's upcoming events.

    Each event is its own unit of work with its own session and commit, so
    one failure never rolls back or blocks the others.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Settings,
        calendar_service: CalendarService | None = None,
        proposal_service: ProposalService | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._calendar = calendar_service or CalendarService()
        self._proposals = proposal_service or ProposalService(settings)

    async def run_for_user(self, user_id: str, now_ms: int | None = None) -> CycleReport:
        now = now_ms if now_ms is not None else current_ms()
        report = CycleReport(user_id=user_id)
        started = time.monotonic()
        try:
            await asyncio.wait_for(self._run(user_id, now, report), timeout=self._settings.batch_timeout_seconds)
        except asyncio.TimeoutError:
            report.timed_out = True
            logger.warning(
                "Reschedule cycle for user=%s timed out after %.0fs",
                user_id[:8],
                self._settings.batch_timeout_seconds,
            )
        finally:
            reschedule_cycle_duration_seconds.observe(time.monotonic() - started)

        reschedule_cycles_total.labels(outcome=report.outcome).inc()
        logger.info(
            "Reschedule cycle for user=%s: proposed=%d locked=%d existing=%d no_candidates=%d approvals=%d failed=%d",
            user_id[:8],
            report.proposed,
            report.skipped_locked,
            report.skipped_existing,
            report.skipped_no_candidates,
            report.approval_requests,
            len(report.failed),
        )
        return report

    async def _run(self, user_id: str, now: int, report: CycleReport) -> None:
        settings = self._settings
        horizon_end = now + settings.horizon_days * DAY_MS

        async with self._session_factory() as db:
            rows = await self._calendar.list_events(db, user_id, now, horizon_end)

        # Every event occupies time, even one we cannot plan for
        busy = [TimeRange(start_at=r.start_at, end_at=r.end_at) for r in rows]
        search_window = TimeRange(
            start_at=now + settings.search_offset_minutes * MINUTE_MS,
            end_at=horizon_end,
        )

        for row in rows:
            try:
                event = CalendarEventRead.model_validate(row)
            except ValidationError as e:
                logger.warning("Skipping event %s with malformed policy: %d error(s)", row.id, e.error_count())
                report.failed.append(str(row.id))
                continue

            if not should_move_event(event, move_without_policy=settings.move_events_without_policy):
                report.skipped_locked += 1
                continue

            try:
                await self._propose_for_event(user_id, event, busy, search_window, report)
            except Exception:
                logger.exception("Proposal creation failed for event %s", event.id)
                report.failed.append(str(event.id))

    async def _propose_for_event(
        self,
        user_id: str,
        event: CalendarEventRead,
        busy: list[TimeRange],
        search_window: TimeRange,
        report: CycleReport,
    ) -> None:
        settings = self._settings
        async with self._session_factory() as db:
            if await self._proposals.find_unresolved_for_event(db, event.id) is not None:
                report.skipped_existing += 1
                return

            draft = propose_reschedule(
                event,
                busy,
                search_window,
                step_minutes=settings.slot_step_minutes,
                max_slots=settings.max_slots,
                respect_shift_bounds=settings.enforce_shift_bounds,
            )
            if not draft.options:
                report.skipped_no_candidates += 1
                return

            needs_approver = requires_approver(event.policy)
            approver = None
            if needs_approver and event.policy.approver is not None:
                approver = event.policy.approver.model_dump(exclude_none=True)

            proposal, token = await self._proposals.create_proposal(
                db,
                user_id=user_id,
                event_id=event.id,
                created_by=ProposalCreator.BRAIN,
                rationale=draft.rationale,
                options=draft.options,
                requires_approver=needs_approver,
                approver=approver,
            )
            queued = await enqueue_approval_request(db, proposal, token, settings.approval_base_url)
            await db.commit()

        report.proposed += 1
        if queued is not None:
            report.approval_requests += 1
        proposals_total.labels(action="sent").inc()
