"""Event cleaning pipeline: raw provider events -> canonical CleanedEvent v1.

Every calendar event type must have an explicit entry in ``EVENT_REGISTRY``.
Cleaners apply the caller's consent snapshot: fields the user did not
consent to share are left out and their names listed in
``privacy.redactions``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from brain_calendar.models.ingested_event import BrainStatus
from brain_calendar.schemas.cleaned_event import (
    CleanedEvent,
    CleanedEventRef,
    CleanedSource,
    ConsentScopes,
    PrivacyInfo,
    Tenant,
)

logger = logging.getLogger(__name__)

CLEAN_VERSION = "1"
CALENDAR_PREFIX = "calendar."

# Content fields of a calendar event that need calendar_content consent
CALENDAR_CONTENT_FIELDS = ("title", "location", "rrule", "notesRef")


class UnregisteredEventTypeError(ValueError):
    """A calendar event type has no cleaner and must not bypass redaction."""

    def __init__(self, event_type: str) -> None:
        super().__init__(f"No cleaner registered for event type {event_type!r}")
        self.event_type = event_type


@dataclass(frozen=True)
class CleanParams:
    clerk_user_id: str
    source_event_id: str
    event_type: str
    occurred_at_ms: int
    payload: Any


Cleaner = Callable[[CleanParams, ConsentScopes], CleanedEvent]


@dataclass(frozen=True)
class RegistryEntry:
    cleaner: Cleaner
    default_brain_status: BrainStatus


def _calendar_consent(consent: ConsentScopes) -> dict[str, bool]:
    return {
        "calendarMetadata": consent.calendar_metadata,
        "calendarContent": consent.calendar_content,
    }


def _calendar_source(payload: dict[str, Any]) -> CleanedSource:
    return CleanedSource(
        system="calendar",
        provider=payload.get("provider") or "unknown",
        account_id=payload.get("accountId"),
    )


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def clean_calendar_event(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Cleaner for ``calendar.event.upserted`` and ``calendar.event.deleted``."""
    payload = _as_dict(params.payload)
    ev = _as_dict(payload.get("event"))
    redactions: list[str] = []

    provider_event_id = payload.get("providerEventId") or ev.get("providerEventId") or params.source_event_id
    calendar_id = payload.get("providerCalendarId") or ev.get("providerCalendarId")

    content: dict[str, Any] = {
        "time": {
            "startAtMs": ev.get("startAtMs"),
            "endAtMs": ev.get("endAtMs"),
            "tz": ev.get("timezone") or "UTC",
        }
    }
    if consent.calendar_content:
        content["title"] = ev.get("title")
        content["location"] = ev.get("location")
        content["rrule"] = ev.get("rrule")
        content["notesRef"] = ev.get("notesRef")
    else:
        redactions.extend(f for f in CALENDAR_CONTENT_FIELDS if ev.get(f) is not None)

    entities: dict[str, Any] = {"calendarId": calendar_id, "eventId": provider_event_id}
    organizer_email = _as_dict(ev.get("organizer")).get("email")
    attendees = ev.get("attendees") if isinstance(ev.get("attendees"), list) else []
    attendee_emails = [a["email"] for a in attendees if isinstance(a, dict) and a.get("email")]
    if consent.calendar_metadata:
        entities["participants"] = {
            "organizerEmail": organizer_email,
            "attendeeEmails": attendee_emails,
        }
    else:
        if organizer_email:
            redactions.append("participants.organizerEmail")
        if attendee_emails:
            redactions.append("participants.attendeeEmails")

    return CleanedEvent(
        clean_version=CLEAN_VERSION,
        tenant=Tenant(clerk_user_id=params.clerk_user_id),
        source=_calendar_source(payload),
        event=CleanedEventRef(id=provider_event_id, type=params.event_type, occurred_at_ms=params.occurred_at_ms),
        entities=entities,
        content=content,
        privacy=PrivacyInfo(consent=_calendar_consent(consent), redactions=redactions),
        features={"allDay": bool(ev.get("allDay")), "isRecurring": bool(ev.get("rrule"))},
    )


def clean_policy_update(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Cleaner for ``calendar.event.policy.updated``: lock and sharing levels only."""
    payload = _as_dict(params.payload)
    policy = _as_dict(payload.get("policy"))
    redactions = ["policy.approver"] if policy.get("approver") else []
    event_id = payload.get("eventId") or params.source_event_id

    return CleanedEvent(
        clean_version=CLEAN_VERSION,
        tenant=Tenant(clerk_user_id=params.clerk_user_id),
        source=_calendar_source(payload),
        event=CleanedEventRef(id=str(event_id), type=params.event_type, occurred_at_ms=params.occurred_at_ms),
        entities={"eventId": event_id},
        content={
            "lockState": policy.get("lockState"),
            "contentSharing": policy.get("contentSharing"),
            "requiresApprover": policy.get("lockState") == "negotiable",
        },
        privacy=PrivacyInfo(consent=_calendar_consent(consent), redactions=redactions),
    )


def clean_reschedule_event(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Cleaner for ``calendar.reschedule.*`` lifecycle events."""
    payload = _as_dict(params.payload)
    options = payload.get("options") if isinstance(payload.get("options"), list) else []
    redactions: list[str] = []

    content: dict[str, Any] = {
        "status": payload.get("status"),
        "optionCount": len(options),
        "chosenOptionIndex": payload.get("chosenOptionIndex"),
    }
    if consent.calendar_content:
        content["rationale"] = payload.get("rationale")
    elif payload.get("rationale") is not None:
        redactions.append("rationale")

    proposal_id = payload.get("proposalId") or params.source_event_id
    return CleanedEvent(
        clean_version=CLEAN_VERSION,
        tenant=Tenant(clerk_user_id=params.clerk_user_id),
        source=CleanedSource(system="calendar", provider="brain"),
        event=CleanedEventRef(id=str(proposal_id), type=params.event_type, occurred_at_ms=params.occurred_at_ms),
        entities={"proposalId": proposal_id, "eventId": payload.get("eventId")},
        content=content,
        privacy=PrivacyInfo(consent=_calendar_consent(consent), redactions=redactions),
    )


# Envelope keys kept by the metadata cleaner; everything else is dropped and recorded
_METADATA_KEYS = ("payloadVersion", "provider", "accountId", "providerEventId")


def clean_calendar_metadata(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Cleaner for account, sync and UI events: identifiers only, no content."""
    payload = _as_dict(params.payload)
    redactions = sorted(k for k in payload if k not in _METADATA_KEYS)
    entities = {"accountId": payload.get("accountId")}
    if payload.get("providerEventId"):
        entities["eventId"] = payload["providerEventId"]

    return CleanedEvent(
        clean_version=CLEAN_VERSION,
        tenant=Tenant(clerk_user_id=params.clerk_user_id),
        source=_calendar_source(payload),
        event=CleanedEventRef(id=params.source_event_id, type=params.event_type, occurred_at_ms=params.occurred_at_ms),
        entities=entities,
        content={},
        privacy=PrivacyInfo(consent=_calendar_consent(consent), redactions=redactions),
    )


def passthrough(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Non-calendar event types: payload kept verbatim, no privacy filtering."""
    return CleanedEvent(
        clean_version=CLEAN_VERSION,
        tenant=Tenant(clerk_user_id=params.clerk_user_id),
        source=CleanedSource(system="unknown", provider="unknown"),
        event=CleanedEventRef(id=params.source_event_id, type=params.event_type, occurred_at_ms=params.occurred_at_ms),
        entities={},
        content=params.payload,
        privacy=PrivacyInfo(consent={}, redactions=[]),
        features={},
    )


EVENT_REGISTRY: dict[str, RegistryEntry] = {
    "calendar.account.connected": RegistryEntry(clean_calendar_metadata, BrainStatus.PENDING),
    "calendar.account.disconnected": RegistryEntry(clean_calendar_metadata, BrainStatus.SKIPPED),
    "calendar.sync.started": RegistryEntry(clean_calendar_metadata, BrainStatus.SKIPPED),
    "calendar.sync.completed": RegistryEntry(clean_calendar_metadata, BrainStatus.PENDING),
    "calendar.sync.failed": RegistryEntry(clean_calendar_metadata, BrainStatus.SKIPPED),
    "calendar.event.upserted": RegistryEntry(clean_calendar_event, BrainStatus.PENDING),
    "calendar.event.deleted": RegistryEntry(clean_calendar_event, BrainStatus.PENDING),
    "calendar.event.policy.updated": RegistryEntry(clean_policy_update, BrainStatus.PENDING),
    "calendar.reschedule.proposed": RegistryEntry(clean_reschedule_event, BrainStatus.PENDING),
    "calendar.reschedule.requestedApproval": RegistryEntry(clean_reschedule_event, BrainStatus.PENDING),
    "calendar.reschedule.approved": RegistryEntry(clean_reschedule_event, BrainStatus.PENDING),
    "calendar.reschedule.rejected": RegistryEntry(clean_reschedule_event, BrainStatus.SKIPPED),
    "calendar.reschedule.applied": RegistryEntry(clean_reschedule_event, BrainStatus.PENDING),
    "calendar.ui.openedEvent": RegistryEntry(clean_calendar_metadata, BrainStatus.SKIPPED),
    "calendar.ui.dragRescheduled": RegistryEntry(clean_calendar_metadata, BrainStatus.PENDING),
}

PASSTHROUGH_ENTRY = RegistryEntry(passthrough, BrainStatus.SKIPPED)


def lookup_cleaner(event_type: str) -> RegistryEntry:
    """Resolve the registry entry for an event type.

    Raises:
        UnregisteredEventTypeError: for calendar types without a cleaner.
    """
    entry = EVENT_REGISTRY.get(event_type)
    if entry is not None:
        return entry
    if event_type.startswith(CALENDAR_PREFIX):
        raise UnregisteredEventTypeError(event_type)
    return PASSTHROUGH_ENTRY


def clean_event_v1(params: CleanParams, consent: ConsentScopes) -> CleanedEvent:
    """Clean a raw event with the cleaner registered for its type."""
    entry = lookup_cleaner(params.event_type)
    cleaned = entry.cleaner(params, consent)
    if cleaned.privacy.redactions:
        logger.debug(
            "Redacted %d field(s) from %s event",
            len(cleaned.privacy.redactions),
            params.event_type,
        )
    return cleaned
