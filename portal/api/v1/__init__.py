"""V1 API router aggregation."""

from fastapi import APIRouter

from portal.api.v1.entities import router as entities_router
from portal.api.v1.integrations import router as integrations_router
from portal.api.v1.scheduling import router as scheduling_router
from portal.api.v1.system import router as system_router
from portal.api.v1.tenant import router as tenant_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(tenant_router)
v1_router.include_router(entities_router)
v1_router.include_router(scheduling_router)
v1_router.include_router(integrations_router)
v1_router.include_router(system_router)
