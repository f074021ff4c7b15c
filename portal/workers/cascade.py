"""Periodic job: re-run cascade-delete cleanup steps that previously failed."""

from __future__ import annotations

import logging
import uuid

from portal.core.config import get_settings
from portal.core.database import async_session_factory
from portal.models.cascade_job import CascadeJobStatus
from portal.services.cascade import CascadeDeleteOrchestrator, pending_job_ids

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 100


def _orchestrator() -> CascadeDeleteOrchestrator:
    return CascadeDeleteOrchestrator(max_attempts=get_settings().cascade_step_max_attempts)


async def retry_cascade_job(ctx: dict, job_id: str) -> dict:
    """Retry one cascade job by id."""
    async with async_session_factory() as session:
        job = await _orchestrator().retry_job(session, uuid.UUID(job_id))
    if job is None:
        logger.warning("Cascade job %s not found", job_id)
        return {"status": "missing"}
    return {"status": job.status, "attempts": job.attempts}


async def retry_pending_cascades(ctx: dict) -> dict:
    """Sweep pending cascade jobs, oldest first."""
    orchestrator = _orchestrator()
    completed = 0
    still_pending = 0

    async with async_session_factory() as session:
        job_ids = await pending_job_ids(session, limit=SWEEP_BATCH_SIZE)
        for job_id in job_ids:
            job = await orchestrator.retry_job(session, job_id)
            if job is not None and job.status == CascadeJobStatus.COMPLETED:
                completed += 1
            else:
                still_pending += 1

    if job_ids:
        logger.info(
            "Cascade sweep: %d job(s) completed, %d still pending", completed, still_pending
        )
    return {"completed": completed, "pending": still_pending}
