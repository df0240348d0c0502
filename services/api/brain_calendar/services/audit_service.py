"""Audit logging for calendar and proposal mutations."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from brain_calendar.models.audit_log import AuditLog
from brain_calendar.models.reschedule_proposal import RescheduleProposal


async def write_audit_log(
    db: AsyncSession,
    user_id: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Write an audit log entry."""
    log_entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        extra_data=metadata,
    )
    db.add(log_entry)
    await db.flush()
    return log_entry


async def audit_proposal(
    db: AsyncSession,
    proposal: RescheduleProposal,
    step: str,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Record a lifecycle step as ``proposal.<step>`` for the proposal's owner.

    Capability tokens must never be passed in ``metadata``.
    """
    return await write_audit_log(
        db=db,
        user_id=proposal.user_id,
        action=f"proposal.{step}",
        entity_type="proposal",
        entity_id=str(proposal.id),
        metadata=metadata,
    )
