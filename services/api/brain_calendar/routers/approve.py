"""Public approval link for external approvers.

The link carries the proposal's capability token; no other authentication
is required. Whatever happens internally, the holder of the link sees the
same confirmation page, so the link reveals nothing about proposal state.
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.config import Settings, get_settings
from brain_calendar.dependencies import get_db
from brain_calendar.metrics import proposals_total
from brain_calendar.services.proposal_lifecycle import DecisionOutcome, ProposalError, ProposalService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["approve"])

EXTERNAL_LINK_ACTOR = "external_link"

CONFIRMATION_PAGE = """
<html><body style="font-family: -apple-system, sans-serif; padding: 20px;">
  <h2>Thanks, your response has been recorded.</h2>
  <p>You can close this tab.</p>
</body></html>
"""


def _confirmation() -> HTMLResponse:
    return HTMLResponse(CONFIRMATION_PAGE)


@router.get("/approve", response_class=HTMLResponse)
async def approve_via_link(
    token: str | None = Query(None),
    decision: str = Query("approved"),
    option: str = Query("0"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Record an approver's decision from an emailed link."""
    if not token:
        return PlainTextResponse("Missing token", status_code=400)

    service = ProposalService(settings)
    proposal = await service.get_by_token(db, token)
    if proposal is None:
        logger.info("Approval link used with an unknown token")
        return _confirmation()

    if decision not in ("approved", "rejected"):
        logger.info("Approval link for proposal %s had invalid decision", proposal.id)
        return _confirmation()

    try:
        chosen_option_index = int(option) if decision == "approved" else None
    except ValueError:
        logger.info("Approval link for proposal %s had non-numeric option", proposal.id)
        return _confirmation()

    try:
        outcome = await service.record_approval(
            db,
            proposal,
            decision=decision,
            chosen_option_index=chosen_option_index,
            actor=EXTERNAL_LINK_ACTOR,
        )
    except ProposalError as e:
        logger.info("Approval link for proposal %s not recorded: %s", proposal.id, type(e).__name__)
        return _confirmation()

    action = decision if outcome == DecisionOutcome.RECORDED else outcome.value
    proposals_total.labels(action=action).inc()
    return _confirmation()
