"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal.api.middleware import TenantMiddleware
from portal.api.v1 import v1_router
from portal.core.cache import TTLCache
from portal.core.config import get_settings
from portal.core.database import async_session_factory, init_db
from portal.core.errors import UpstreamAuthError, UpstreamRequestError
from portal.services.cascade import CascadeDeleteOrchestrator
from portal.services.credentials import CredentialRegistry
from portal.services.tenant_resolver import TenantResolver, TenantStore

logger = logging.getLogger(__name__)

_settings = get_settings()


def build_tenant_resolver(session_factory=async_session_factory) -> TenantResolver:
    return TenantResolver(
        store=TenantStore(session_factory),
        cache=TTLCache(
            ttl=_settings.tenant_cache_ttl_seconds,
            max_entries=_settings.tenant_cache_max_entries,
        ),
        default_tenant_id=_settings.default_tenant_id,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(level=_settings.log_level.upper())
    # Startup: ensure tables exist (use Alembic in production)
    await init_db()
    yield


app = FastAPI(
    title="Member Portal",
    version="0.1.0",
    description="Multi-tenant member portal backend",
    lifespan=lifespan,
)

# Process-local services; each worker process holds its own caches
app.state.tenant_resolver = build_tenant_resolver()
app.state.credentials = CredentialRegistry.from_settings(_settings, async_session_factory)
app.state.cascade = CascadeDeleteOrchestrator(max_attempts=_settings.cascade_step_max_attempts)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(TenantMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UpstreamAuthError)
async def upstream_auth_error_handler(_request: Request, exc: UpstreamAuthError) -> JSONResponse:
    logger.error("Upstream authentication unavailable for %s: %s", exc.integration, exc.detail)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "upstream_auth_unavailable",
            "integration": exc.integration,
            "detail": exc.detail,
        },
    )


@app.exception_handler(UpstreamRequestError)
async def upstream_request_error_handler(_request: Request, exc: UpstreamRequestError) -> JSONResponse:
    logger.error(
        "Upstream %s request failed (HTTP %s): %s", exc.integration, exc.status_code, exc.detail
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "upstream_request_failed",
            "integration": exc.integration,
            "upstreamStatus": exc.status_code,
            "detail": exc.detail,
        },
    )


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
