"""System health endpoint: store connectivity and integration configuration."""

import time

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from portal.api.deps import Credentials, Session

router = APIRouter(prefix="/system", tags=["system"])


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class HealthResponse(BaseModel):
    status: str
    database: ServiceHealth
    integrations: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session, credentials: Credentials) -> HealthResponse:
    db = await _check_database(session)
    return HealthResponse(
        status="ok" if db.status == "ok" else "degraded",
        database=db,
        integrations=credentials.configured(),
    )


async def _check_database(session) -> ServiceHealth:
    start = time.monotonic()
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])
    return ServiceHealth(status="ok", latency_ms=int((time.monotonic() - start) * 1000))
