"""Reschedule proposal lifecycle.

    draft -> sent -> approved -> applied
                  -> rejected
                  -> expired

The module-level functions are the state machine and only touch the
proposal object. ``ProposalService`` wraps them with persistence, approval
records and audit logging.
"""

import enum
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.config import Settings
from brain_calendar.models.calendar_event import CalendarEvent
from brain_calendar.models.proposal_approval import ProposalApproval
from brain_calendar.models.reschedule_proposal import (
    UNRESOLVED_STATUSES,
    ProposalCreator,
    ProposalStatus,
    RescheduleProposal,
)
from brain_calendar.services.audit_service import audit_proposal
from brain_calendar.services.planner import ProposalOption

logger = logging.getLogger(__name__)

Decision = Literal["approved", "rejected"]

ALLOWED_TRANSITIONS: dict[ProposalStatus, frozenset[ProposalStatus]] = {
    ProposalStatus.DRAFT: frozenset({ProposalStatus.SENT}),
    ProposalStatus.SENT: frozenset({ProposalStatus.APPROVED, ProposalStatus.REJECTED, ProposalStatus.EXPIRED}),
    ProposalStatus.APPROVED: frozenset({ProposalStatus.APPLIED}),
    ProposalStatus.REJECTED: frozenset(),
    ProposalStatus.APPLIED: frozenset(),
    ProposalStatus.EXPIRED: frozenset(),
}

DECIDED_STATUSES = frozenset({ProposalStatus.APPROVED, ProposalStatus.REJECTED, ProposalStatus.APPLIED})


class ProposalError(Exception):
    """Base class for proposal lifecycle errors."""


class InvalidTransitionError(ProposalError):
    def __init__(self, current: ProposalStatus, target: ProposalStatus) -> None:
        super().__init__(f"Cannot move proposal from {current.value} to {target.value}")
        self.current = current
        self.target = target


class InvalidOptionError(ProposalError, ValueError):
    """Chosen option index does not point into the proposal's options."""


class EmptyProposalError(ProposalError):
    """A proposal without options cannot leave draft."""


class ProposalNotFoundError(ProposalError):
    pass


class ProposalNotApplicableError(ProposalError):
    """Apply was requested for a proposal that is not approved."""


class DecisionOutcome(str, enum.Enum):
    RECORDED = "recorded"
    ALREADY_DECIDED = "already_decided"
    EXPIRED = "expired"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def can_transition(current: ProposalStatus, target: ProposalStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _transition(proposal: RescheduleProposal, target: ProposalStatus) -> None:
    if not can_transition(proposal.status, target):
        raise InvalidTransitionError(proposal.status, target)
    proposal.status = target


def new_draft(
    user_id: str,
    event_id: uuid.UUID,
    created_by: ProposalCreator,
    rationale: str,
    options: Sequence[ProposalOption | dict[str, Any]],
    requires_approver: bool,
    approver: dict[str, Any] | None = None,
) -> RescheduleProposal:
    """Build an unsaved draft. ``requires_approver`` is frozen from here on."""
    return RescheduleProposal(
        id=uuid.uuid4(),
        user_id=user_id,
        event_id=event_id,
        created_by=created_by,
        status=ProposalStatus.DRAFT,
        rationale=rationale,
        options=[o.to_dict() if isinstance(o, ProposalOption) else dict(o) for o in options],
        chosen_option_index=None,
        requires_approver=requires_approver,
        approver=approver if requires_approver else None,
    )


def mark_sent(proposal: RescheduleProposal, now: datetime, ttl: timedelta) -> str:
    """Move a draft to sent and mint its capability token.

    Returns the raw token. Only its hash is stored on the proposal.
    """
    if not proposal.options:
        raise EmptyProposalError("Proposal has no options")
    _transition(proposal, ProposalStatus.SENT)
    token = secrets.token_urlsafe(32)
    proposal.token_hash = hash_token(token)
    proposal.token_expires_at = now + ttl
    return token


def record_decision(
    proposal: RescheduleProposal,
    decision: Decision,
    chosen_option_index: int | None,
    now: datetime,
) -> DecisionOutcome:
    """Apply an approver's decision to a sent proposal.

    Deciding again after a decision was recorded changes nothing and
    reports ALREADY_DECIDED. A sent proposal past its token expiry is
    expired instead of decided.
    """
    if proposal.status in DECIDED_STATUSES:
        return DecisionOutcome.ALREADY_DECIDED
    if proposal.status == ProposalStatus.EXPIRED:
        return DecisionOutcome.EXPIRED
    if proposal.status != ProposalStatus.SENT:
        target = ProposalStatus.APPROVED if decision == "approved" else ProposalStatus.REJECTED
        raise InvalidTransitionError(proposal.status, target)

    if proposal.token_expires_at is not None and proposal.token_expires_at < now:
        _transition(proposal, ProposalStatus.EXPIRED)
        return DecisionOutcome.EXPIRED

    if decision == "approved":
        if chosen_option_index is None or not 0 <= chosen_option_index < len(proposal.options):
            raise InvalidOptionError(f"Option index {chosen_option_index} is out of range")
        _transition(proposal, ProposalStatus.APPROVED)
        proposal.chosen_option_index = chosen_option_index
    elif decision == "rejected":
        _transition(proposal, ProposalStatus.REJECTED)
        proposal.chosen_option_index = None
    else:
        raise ValueError(f"Unknown decision: {decision}")

    proposal.decided_at = now
    return DecisionOutcome.RECORDED


def chosen_option(proposal: RescheduleProposal) -> dict[str, Any]:
    index = proposal.chosen_option_index
    if index is None or not 0 <= index < len(proposal.options):
        raise InvalidOptionError("Proposal has no valid chosen option")
    return proposal.options[index]


def mark_applied(proposal: RescheduleProposal, now: datetime) -> None:
    if proposal.status != ProposalStatus.APPROVED:
        raise ProposalNotApplicableError(f"Proposal is {proposal.status.value}, not approved")
    _transition(proposal, ProposalStatus.APPLIED)
    proposal.applied_at = now


def expire(proposal: RescheduleProposal) -> None:
    _transition(proposal, ProposalStatus.EXPIRED)


class ProposalService:
    """Persistence-aware operations on reschedule proposals."""

    def __init__(self, settings: Settings) -> None:
        self._ttl = timedelta(hours=settings.proposal_ttl_hours)

    async def find_unresolved_for_event(
        self,
        db: AsyncSession,
        event_id: uuid.UUID,
    ) -> RescheduleProposal | None:
        result = await db.execute(
            select(RescheduleProposal)
            .where(
                RescheduleProposal.event_id == event_id,
                RescheduleProposal.status.in_(UNRESOLVED_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_proposal(
        self,
        db: AsyncSession,
        user_id: str,
        event_id: uuid.UUID,
        created_by: ProposalCreator,
        rationale: str,
        options: Sequence[ProposalOption | dict[str, Any]],
        requires_approver: bool,
        approver: dict[str, Any] | None = None,
    ) -> tuple[RescheduleProposal, str]:
        """Persist a draft, then send it.

        Returns the proposal and its raw capability token.

        Raises:
            EmptyProposalError: if ``options`` is empty. Nothing is written.
        """
        if not options:
            raise EmptyProposalError("Refusing to create a proposal without options")

        proposal = new_draft(
            user_id=user_id,
            event_id=event_id,
            created_by=created_by,
            rationale=rationale,
            options=options,
            requires_approver=requires_approver,
            approver=approver,
        )
        db.add(proposal)
        await db.flush()

        token = mark_sent(proposal, datetime.now(timezone.utc), self._ttl)
        await db.flush()

        await audit_proposal(
            db,
            proposal,
            "sent",
            metadata={
                "event_id": str(event_id),
                "option_count": len(proposal.options),
                "requires_approver": requires_approver,
            },
        )
        logger.info(
            "Proposal %s sent for user=%s (options=%d, requires_approver=%s)",
            proposal.id,
            user_id[:8],
            len(proposal.options),
            requires_approver,
        )
        return proposal, token

    async def get_proposal(
        self,
        db: AsyncSession,
        user_id: str,
        proposal_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> RescheduleProposal:
        query = select(RescheduleProposal).where(
            RescheduleProposal.id == proposal_id,
            RescheduleProposal.user_id == user_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        proposal = result.scalar_one_or_none()
        if proposal is None:
            raise ProposalNotFoundError(str(proposal_id))
        return proposal

    async def get_by_token(self, db: AsyncSession, token: str) -> RescheduleProposal | None:
        result = await db.execute(
            select(RescheduleProposal)
            .where(RescheduleProposal.token_hash == hash_token(token))
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def list_proposals(
        self,
        db: AsyncSession,
        user_id: str,
        status: ProposalStatus | None = None,
    ) -> Sequence[RescheduleProposal]:
        query = (
            select(RescheduleProposal)
            .where(RescheduleProposal.user_id == user_id)
            .order_by(RescheduleProposal.created_at.desc())
        )
        if status is not None:
            query = query.where(RescheduleProposal.status == status)
        result = await db.execute(query)
        return result.scalars().all()

    async def record_approval(
        self,
        db: AsyncSession,
        proposal: RescheduleProposal,
        decision: Decision,
        chosen_option_index: int | None,
        actor: str,
        comment: str | None = None,
    ) -> DecisionOutcome:
        """Record a decision and its approval entry. Safe to repeat."""
        previous = proposal.status
        outcome = record_decision(proposal, decision, chosen_option_index, datetime.now(timezone.utc))

        if outcome == DecisionOutcome.RECORDED:
            db.add(
                ProposalApproval(
                    proposal_id=proposal.id,
                    actor=actor,
                    decision=decision,
                    chosen_option_index=proposal.chosen_option_index,
                    comment=comment,
                )
            )
            await audit_proposal(
                db,
                proposal,
                proposal.status.value,
                metadata={"actor": actor, "chosen_option_index": proposal.chosen_option_index},
            )
        elif outcome == DecisionOutcome.EXPIRED and previous != proposal.status:
            await audit_proposal(db, proposal, "expired", metadata={"actor": actor})
        else:
            logger.info("Decision on proposal %s ignored (%s)", proposal.id, outcome.value)

        await db.flush()
        return outcome

    async def apply_approved_proposal(
        self,
        db: AsyncSession,
        user_id: str,
        proposal_id: uuid.UUID,
    ) -> CalendarEvent:
        """Write the chosen option back to the event.

        Applying an already-applied proposal returns the event untouched.

        Raises:
            ProposalNotFoundError: unknown proposal or event.
            ProposalNotApplicableError: proposal is not approved.
        """
        proposal = await self.get_proposal(db, user_id, proposal_id, for_update=True)

        event = await db.get(CalendarEvent, proposal.event_id)
        if event is None or event.deleted_at is not None:
            raise ProposalNotFoundError(f"Event {proposal.event_id} no longer exists")

        if proposal.status == ProposalStatus.APPLIED:
            return event
        if proposal.status != ProposalStatus.APPROVED:
            raise ProposalNotApplicableError(f"Proposal is {proposal.status.value}, not approved")

        option = chosen_option(proposal)
        original = {"start_at": event.start_at, "end_at": event.end_at}
        event.start_at = option["start_at"]
        event.end_at = option["end_at"]
        mark_applied(proposal, datetime.now(timezone.utc))
        await db.flush()

        await audit_proposal(
            db,
            proposal,
            "applied",
            metadata={"event_id": str(event.id), "previous": original, "applied": option},
        )
        logger.info("Applied proposal %s to event %s", proposal.id, event.id)
        return event

    async def expire_stale_proposals(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Expire every sent proposal whose token deadline has passed."""
        now = now or datetime.now(timezone.utc)
        result = await db.execute(
            select(RescheduleProposal)
            .where(
                RescheduleProposal.status == ProposalStatus.SENT,
                RescheduleProposal.token_expires_at < now,
            )
            .with_for_update(skip_locked=True)
        )
        stale = result.scalars().all()
        for proposal in stale:
            expire(proposal)
            await audit_proposal(db, proposal, "expired", metadata={"expired_at": now.isoformat()})
        await db.flush()
        if stale:
            logger.info("Expired %d stale proposal(s)", len(stale))
        return len(stale)
