"""Internal trigger for a single user's reschedule cycle."""

import secrets
from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from brain_calendar.config import Settings, get_settings
from brain_calendar.dependencies import get_session_factory
from brain_calendar.schemas.cycle import CycleReportResponse
from brain_calendar.services.orchestrator import RescheduleOrchestrator

router = APIRouter(prefix="/internal/cron", tags=["cron"])


def verify_cron_secret(
    x_cron_secret: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.cron_secret.get_secret_value()
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron trigger is not configured")
    if not x_cron_secret or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid cron secret")


@router.post("/run", response_model=CycleReportResponse, dependencies=[Depends(verify_cron_secret)])
async def run_reschedule_cycle(
    user: str = Query(..., min_length=1, max_length=255),
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Run the orchestration loop for one user and report what it did."""
    report = await RescheduleOrchestrator(session_factory, settings).run_for_user(user)
    return CycleReportResponse(**asdict(report))
