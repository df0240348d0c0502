"""Canonical cleaned event envelope (version 1) and consent snapshot.

Serialized field names are camelCase to match the canonical event contract
shared with the clients.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ConsentScopes(_CamelModel):
    """The user's consent at the time of ingestion. Anything not granted is denied."""

    calendar_metadata: bool = False
    calendar_content: bool = False
    email_metadata: bool = False
    email_content: bool = False


class Tenant(_CamelModel):
    clerk_user_id: str


class CleanedSource(_CamelModel):
    system: str
    provider: str
    account_id: str | None = None


class CleanedEventRef(_CamelModel):
    id: str
    type: str
    occurred_at_ms: int


class PrivacyInfo(_CamelModel):
    consent: dict[str, bool] = Field(default_factory=dict)
    redactions: list[str] = Field(default_factory=list)


class CleanedEvent(_CamelModel):
    clean_version: Literal["1"] = "1"
    tenant: Tenant
    source: CleanedSource
    event: CleanedEventRef
    entities: dict[str, Any] = Field(default_factory=dict)
    content: Any = Field(default_factory=dict)
    privacy: PrivacyInfo = Field(default_factory=PrivacyInfo)
    features: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict with canonical field names, for the event log."""
        return self.model_dump(by_alias=True, mode="json")
