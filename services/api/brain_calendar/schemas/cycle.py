"""Orchestration cycle report schema."""

from pydantic import BaseModel


class CycleReportResponse(BaseModel):
    user_id: str
    proposed: int
    skipped_locked: int
    skipped_existing: int
    skipped_no_candidates: int
    approval_requests: int = 0
    failed: list[str]
    timed_out: bool
