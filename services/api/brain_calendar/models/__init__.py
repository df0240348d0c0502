"""Brain Calendar database models."""

from brain_calendar.models.audit_log import AuditLog
from brain_calendar.models.calendar_event import CalendarEvent
from brain_calendar.models.ingested_event import BrainStatus, IngestedEvent
from brain_calendar.models.notification_outbox import NotificationChannel, NotificationOutbox, OutboxStatus
from brain_calendar.models.proposal_approval import ProposalApproval
from brain_calendar.models.reschedule_proposal import ProposalCreator, ProposalStatus, RescheduleProposal

__all__ = [
    "CalendarEvent",
    "RescheduleProposal",
    "ProposalStatus",
    "ProposalCreator",
    "ProposalApproval",
    "IngestedEvent",
    "BrainStatus",
    "NotificationOutbox",
    "NotificationChannel",
    "OutboxStatus",
    "AuditLog",
]
