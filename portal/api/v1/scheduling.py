"""Webinar scheduling checks."""

import uuid
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from portal.api.deps import Session
from portal.services.conflicts import ScheduledSessionInterval, check_webinar_conflicts

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


class ConflictCheckRequest(BaseModel):
    start_time: datetime
    duration_minutes: int = Field(gt=0)
    host_id: str | None = None
    exclude_id: uuid.UUID | None = None


class ConflictingSession(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    topic: str
    start_time: datetime
    duration_minutes: int
    zoom_webinar_id: str | None = None


class ConflictCheckResponse(BaseModel):
    hasConflicts: bool
    conflicts: list[ConflictingSession]


@router.post("/check-conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(body: ConflictCheckRequest, session: Session) -> ConflictCheckResponse:
    """Report existing, non-cancelled webinars that overlap the proposed slot."""
    candidate = ScheduledSessionInterval(
        start=body.start_time,
        duration_minutes=body.duration_minutes,
        host_id=body.host_id,
        exclude_id=body.exclude_id,
    )
    report = await check_webinar_conflicts(session, candidate)
    return ConflictCheckResponse(
        hasConflicts=report.has_conflicts,
        conflicts=[ConflictingSession.model_validate(w) for w in report.conflicts],
    )
