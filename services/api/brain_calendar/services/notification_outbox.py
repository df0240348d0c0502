"""Notification outbox: queue approval requests for external delivery.

Rows are written in the same transaction as the proposal they announce and
are picked up by a delivery worker outside this service. The raw capability
token leaves the proposal service only through the approval links stored
here.
"""

import logging
from typing import Any
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.metrics import approval_requests_total
from brain_calendar.models.notification_outbox import NotificationChannel, NotificationOutbox
from brain_calendar.models.reschedule_proposal import RescheduleProposal

logger = logging.getLogger(__name__)

APPROVAL_REQUEST_TEMPLATE = "reschedule.approval_request"


def approval_link(base_url: str, token: str, decision: str = "approved", option: int | None = 0) -> str:
    params: dict[str, Any] = {"token": token, "decision": decision}
    if option is not None:
        params["option"] = option
    return f"{base_url.rstrip('/')}/approve?{urlencode(params)}"


def approval_payload(proposal: RescheduleProposal, token: str, base_url: str) -> dict[str, Any]:
    """Template context: one approve link per option plus a reject link."""
    return {
        "proposal_id": str(proposal.id),
        "rationale": proposal.rationale,
        "approver_name": (proposal.approver or {}).get("name"),
        "expires_at": proposal.token_expires_at.isoformat() if proposal.token_expires_at else None,
        "options": [
            {
                "start_at": option["start_at"],
                "end_at": option["end_at"],
                "explain": option["explain"],
                "approve_url": approval_link(base_url, token, "approved", index),
            }
            for index, option in enumerate(proposal.options)
        ],
        "reject_url": approval_link(base_url, token, "rejected", None),
    }


def _approver_address(approver: dict[str, Any] | None) -> tuple[NotificationChannel, str] | None:
    if not approver:
        return None
    if approver.get("email"):
        return NotificationChannel.EMAIL, approver["email"]
    if approver.get("phone"):
        return NotificationChannel.SMS, approver["phone"]
    return None


async def enqueue_notification(
    db: AsyncSession,
    user_id: str,
    channel: NotificationChannel,
    recipient: str,
    template_id: str,
    payload: dict[str, Any],
    proposal_id=None,
) -> NotificationOutbox:
    """Queue a pending notification."""
    entry = NotificationOutbox(
        user_id=user_id,
        proposal_id=proposal_id,
        channel=channel,
        recipient=recipient,
        template_id=template_id,
        payload=payload,
    )
    db.add(entry)
    await db.flush()
    return entry


async def enqueue_approval_request(
    db: AsyncSession,
    proposal: RescheduleProposal,
    token: str,
    base_url: str,
) -> NotificationOutbox | None:
    """Queue the approval links for a sent proposal that needs an approver.

    Returns None when the proposal needs no approver, or when the approver
    has no email or phone to reach them on. Such proposals can still be
    decided in-app by the owner.
    """
    if not proposal.requires_approver:
        return None

    address = _approver_address(proposal.approver)
    if address is None:
        logger.warning("Proposal %s needs an approver but has no contact address", proposal.id)
        return None
    channel, recipient = address

    entry = await enqueue_notification(
        db,
        user_id=proposal.user_id,
        channel=channel,
        recipient=recipient,
        template_id=APPROVAL_REQUEST_TEMPLATE,
        payload=approval_payload(proposal, token, base_url),
        proposal_id=proposal.id,
    )
    approval_requests_total.labels(channel=channel.value).inc()
    logger.info("Queued %s approval request for proposal %s", channel.value, proposal.id)
    return entry
