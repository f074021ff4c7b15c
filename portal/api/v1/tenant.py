"""Tenant context endpoints: client bootstrap and cache administration."""

from fastapi import APIRouter, Request

from portal.api.deps import AdminOnly, CurrentTenant, Resolver
from portal.models.tenant import TenantContext, TenantDebugRead
from portal.services.tenant_resolver import extract_hostname

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get(
    "/bootstrap",
    response_model=TenantContext,
    response_model_by_alias=True,
    summary="Tenant branding and settings for the requesting hostname",
)
async def tenant_bootstrap(tenant: CurrentTenant) -> TenantContext:
    return tenant


@router.get(
    "/debug",
    response_model=TenantDebugRead,
    dependencies=[AdminOnly],
    summary="Show how the requesting hostname resolves",
)
async def tenant_debug(request: Request, resolver: Resolver) -> TenantDebugRead:
    tenant, source = await resolver.resolve_with_source(request.headers)
    return TenantDebugRead(
        hostname=extract_hostname(request.headers),
        source=source,
        tenant_id=tenant.id,
        tenant_slug=tenant.slug,
        cache_entries=len(resolver.cache),
    )


@router.post(
    "/cache/clear",
    dependencies=[AdminOnly],
    summary="Drop cached hostname -> tenant resolutions",
)
async def clear_tenant_cache(resolver: Resolver) -> dict:
    cleared = len(resolver.cache)
    resolver.clear_cache()
    return {"success": True, "cleared": cleared}
