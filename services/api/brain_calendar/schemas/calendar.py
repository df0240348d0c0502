"""Calendar event and event policy schemas."""

import uuid
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from brain_calendar.services.time_windows import TimeRange

# How strictly an event's time is protected:
# - locked: never moved
# - flexible: moved freely, no approval needed
# - negotiable: moved only through an approver
# - sensitive: never moved, limited visibility
LockState = Literal["locked", "flexible", "negotiable", "sensitive"]
MovePermissions = Literal["userOnly", "organizerOnly", "anyAttendee", "specificApprover"]
ContentSharing = Literal["none", "minimal", "full"]
EventVisibility = Literal["public", "private", "confidential"]
AttendeeStatus = Literal["accepted", "declined", "tentative", "needsAction"]

MOVABLE_LOCK_STATES = frozenset({"flexible", "negotiable"})


class Approver(BaseModel):
    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=320)
    phone: str | None = Field(None, max_length=50)


class TimeWindow(BaseModel):
    start_at: int
    end_at: int

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self

    def to_range(self) -> TimeRange:
        return TimeRange(start_at=self.start_at, end_at=self.end_at)


class EventPolicy(BaseModel):
    """Per-event permissions for automated rescheduling."""

    model_config = {"extra": "forbid"}

    lock_state: LockState
    move_permissions: MovePermissions = "userOnly"
    requires_user_confirmation_before_sending_requests: bool = True
    content_sharing: ContentSharing = "minimal"
    approver: Approver | None = None
    allowed_windows: list[TimeWindow] | None = None
    max_shift_minutes: int | None = Field(None, ge=0)
    max_shift_days: int | None = Field(None, ge=0)


# Policy attached to events first seen through provider ingestion
DEFAULT_IMPORTED_POLICY = EventPolicy(
    lock_state="flexible",
    move_permissions="userOnly",
    requires_user_confirmation_before_sending_requests=True,
    content_sharing="minimal",
)


def requires_approver(policy: EventPolicy | None) -> bool:
    """Whether a proposal for an event with this policy needs an approver."""
    return policy is not None and policy.lock_state == "negotiable"


class Attendee(BaseModel):
    email: str
    name: str | None = None
    status: AttendeeStatus | None = None


class Organizer(BaseModel):
    email: str
    name: str | None = None


class CalendarEventRead(BaseModel):
    id: uuid.UUID
    title: str | None = None
    location: str | None = None
    start_at: int
    end_at: int
    timezone: str = "UTC"
    policy: EventPolicy | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    organizer: Organizer | None = None
    visibility: EventVisibility | None = None

    model_config = {"from_attributes": True}


class PolicyUpdateRequest(BaseModel):
    policy: EventPolicy
