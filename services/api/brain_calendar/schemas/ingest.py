"""Ingestion schemas: raw provider events in, per-event results out."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from brain_calendar.schemas.cleaned_event import ConsentScopes


class IngestEventIn(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=100)
    payload: Any = None
    idempotency_key: str | None = Field(None, max_length=255)


class IngestBatchRequest(BaseModel):
    consent: ConsentScopes
    events: list[IngestEventIn] = Field(..., min_length=1, max_length=500)


class IngestResult(BaseModel):
    index: int
    status: Literal["created", "duplicate", "rejected"]
    event_id: str | None = None
    error: str | None = None


class IngestBatchResponse(BaseModel):
    results: list[IngestResult]


class _ProviderModel(BaseModel):
    """Provider payloads arrive camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderPerson(_ProviderModel):
    email: str
    name: str | None = None


class ProviderEvent(_ProviderModel):
    title: str | None = None
    location: str | None = None
    start_at_ms: int
    end_at_ms: int
    timezone: str = "UTC"
    all_day: bool | None = None
    attendees: list[ProviderPerson] | None = None
    organizer: ProviderPerson | None = None
    rrule: str | None = None
    notes_ref: str | None = None

    @model_validator(mode="after")
    def check_order(self) -> "ProviderEvent":
        if self.end_at_ms <= self.start_at_ms:
            raise ValueError("endAtMs must be after startAtMs")
        return self


class CalendarEventPayload(_ProviderModel):
    """Payload of ``calendar.event.upserted``."""

    payload_version: str = "1"
    provider: str
    account_id: str | None = None
    provider_event_id: str
    provider_calendar_id: str | None = None
    event: ProviderEvent


class CalendarEventDeletedPayload(_ProviderModel):
    """Payload of ``calendar.event.deleted``."""

    provider: str
    provider_event_id: str
