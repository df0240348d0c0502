"""Reschedule proposal routes for the in-app flow."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.config import Settings, get_settings
from brain_calendar.dependencies import get_current_user_id, get_db
from brain_calendar.metrics import proposals_total
from brain_calendar.models.reschedule_proposal import ProposalStatus, RescheduleProposal
from brain_calendar.schemas.calendar import CalendarEventRead
from brain_calendar.schemas.proposal import DecisionRequest, DecisionResponse, ProposalResponse
from brain_calendar.services.proposal_lifecycle import (
    DecisionOutcome,
    InvalidOptionError,
    InvalidTransitionError,
    ProposalNotApplicableError,
    ProposalNotFoundError,
    ProposalService,
)

router = APIRouter(prefix="/proposals", tags=["proposals"])

IN_APP_ACTOR = "in_app"


def proposal_to_response(proposal: RescheduleProposal) -> ProposalResponse:
    return ProposalResponse(
        id=str(proposal.id),
        event_id=str(proposal.event_id),
        status=proposal.status.value,
        created_by=proposal.created_by.value,
        rationale=proposal.rationale,
        options=proposal.options,
        chosen_option_index=proposal.chosen_option_index,
        requires_approver=proposal.requires_approver,
        created_at=proposal.created_at.isoformat(),
        decided_at=proposal.decided_at.isoformat() if proposal.decided_at else None,
        applied_at=proposal.applied_at.isoformat() if proposal.applied_at else None,
    )


@router.get("", response_model=list[ProposalResponse])
async def list_proposals(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    status_filter: str | None = Query(None, alias="status"),
):
    """List reschedule proposals for the current user, newest first."""
    status = None
    if status_filter:
        try:
            status = ProposalStatus(status_filter)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid status filter")

    proposals = await ProposalService(settings).list_proposals(db, user_id, status)
    return [proposal_to_response(p) for p in proposals]


@router.get("/{proposal_id}", response_model=ProposalResponse)
async def get_proposal(
    proposal_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        proposal = await ProposalService(settings).get_proposal(db, user_id, proposal_id)
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return proposal_to_response(proposal)


@router.post("/{proposal_id}/decision", response_model=DecisionResponse)
async def decide_proposal(
    proposal_id: uuid.UUID,
    body: DecisionRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Approve (choosing an option) or reject a sent proposal from the app.

    Repeating a decision is harmless: the response reports ``already_decided``.
    """
    service = ProposalService(settings)
    try:
        proposal = await service.get_proposal(db, user_id, proposal_id, for_update=True)
        outcome = await service.record_approval(
            db,
            proposal,
            decision=body.decision,
            chosen_option_index=body.chosen_option_index,
            actor=IN_APP_ACTOR,
            comment=body.comment,
        )
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail="Proposal not found")
    except InvalidOptionError:
        raise HTTPException(status_code=400, detail="chosen_option_index is not a valid option")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    action = body.decision if outcome == DecisionOutcome.RECORDED else outcome.value
    proposals_total.labels(action=action).inc()

    return DecisionResponse(outcome=outcome.value, proposal=proposal_to_response(proposal))


@router.post("/{proposal_id}/apply", response_model=CalendarEventRead)
async def apply_proposal(
    proposal_id: uuid.UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Write an approved proposal's chosen slot back to its event."""
    try:
        event = await ProposalService(settings).apply_approved_proposal(db, user_id, proposal_id)
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail="Proposal not found")
    except (ProposalNotApplicableError, InvalidOptionError) as e:
        raise HTTPException(status_code=409, detail=str(e))

    proposals_total.labels(action="applied").inc()
    return CalendarEventRead.model_validate(event)
