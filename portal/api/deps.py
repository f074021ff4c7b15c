"""FastAPI dependencies for tenant context, admin auth and shared services."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.database import get_session
from portal.core.security import verify_admin_key
from portal.models.tenant import TenantContext
from portal.services.cascade import CascadeDeleteOrchestrator
from portal.services.credentials import CredentialRegistry
from portal.services.tenant_resolver import TenantResolver

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_tenant(request: Request) -> TenantContext:
    """Tenant attached by the tenant middleware; resolved here if it did not run."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        tenant = await get_tenant_resolver(request).resolve(request.headers)
        request.state.tenant = tenant
    return tenant


def get_tenant_resolver(request: Request) -> TenantResolver:
    return request.app.state.tenant_resolver


def get_credentials(request: Request) -> CredentialRegistry:
    return request.app.state.credentials


def get_cascade(request: Request) -> CascadeDeleteOrchestrator:
    return request.app.state.cascade


async def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> None:
    """Gate administrator endpoints on the configured admin API key."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not verify_admin_key(credentials.credentials):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )


# Typed shorthand for use in route signatures
CurrentTenant = Annotated[TenantContext, Depends(get_current_tenant)]
Session = Annotated[AsyncSession, Depends(get_session)]
Resolver = Annotated[TenantResolver, Depends(get_tenant_resolver)]
Credentials = Annotated[CredentialRegistry, Depends(get_credentials)]
Cascade = Annotated[CascadeDeleteOrchestrator, Depends(get_cascade)]
AdminOnly = Depends(require_admin)
