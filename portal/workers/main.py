"""ARQ worker entrypoint."""

from arq import cron
from arq.connections import RedisSettings

from portal.core.config import get_settings
from portal.workers.cascade import retry_cascade_job, retry_pending_cascades


def _redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from portal.core.database import init_db
    await init_db()


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [retry_cascade_job]
    cron_jobs = [cron(retry_pending_cascades, minute=set(range(0, 60, 10)))]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 300


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
