"""Reschedule proposal schemas."""

from typing import Literal

from pydantic import BaseModel, Field


class ProposalOptionSchema(BaseModel):
    start_at: int
    end_at: int
    score: int
    explain: str


class ProposalResponse(BaseModel):
    id: str
    event_id: str
    status: str
    created_by: str
    rationale: str
    options: list[ProposalOptionSchema]
    chosen_option_index: int | None = None
    requires_approver: bool
    created_at: str
    decided_at: str | None = None
    applied_at: str | None = None


class DecisionRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    chosen_option_index: int | None = Field(None, ge=0)
    comment: str | None = Field(None, max_length=2000)


class DecisionResponse(BaseModel):
    outcome: str
    proposal: ProposalResponse
