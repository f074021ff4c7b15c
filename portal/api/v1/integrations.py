"""Upstream integrations: Xero onboarding, token resets and the consuming routes."""

import logging
from datetime import timedelta

import httpx
from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, Field

from portal.api.deps import AdminOnly, Credentials
from portal.core.config import get_settings
from portal.core.errors import UpstreamAuthError
from portal.models.base import utcnow
from portal.models.credential import IntegrationCredentialRead
from portal.services.upstream import fetch_xero_invoice_pdf, list_zoom_users

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])

settings = get_settings()


class XeroConnectResponse(BaseModel):
    success: bool
    context_id: str | None = Field(default=None, serialization_alias="contextId")
    connections: list[dict] = Field(default_factory=list)


class SelectContextRequest(BaseModel):
    context_id: str = Field(min_length=1, max_length=255)
    context_name: str | None = None


async def _fetch_connections(access_token: str) -> list[dict]:
    """Organisations the freshly authorised Xero user granted access to."""
    try:
        async with httpx.AsyncClient(timeout=15) as client:
            response = await client.get(
                settings.xero_connections_url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
    except httpx.HTTPError as exc:
        raise UpstreamAuthError("xero", "connections endpoint unreachable") from exc
    if not response.is_success:
        raise UpstreamAuthError("xero", f"connections lookup failed (HTTP {response.status_code})")
    data = response.json()
    return data if isinstance(data, list) else []


@router.get(
    "/xero/callback",
    response_model=XeroConnectResponse,
    response_model_by_alias=True,
    summary="OAuth redirect target: store the first Xero credential pair",
)
async def xero_callback(
    credentials: Credentials,
    code: str | None = None,
    error: str | None = None,
) -> XeroConnectResponse:
    if error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Xero authorisation failed: {error}",
        )
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No authorization code provided",
        )

    provider = credentials.xero
    grant = await provider.exchange_code(code, settings.xero_redirect_uri)
    if not grant.refresh_token:
        raise UpstreamAuthError("xero", "authorisation response carried no refresh token")

    connections = await _fetch_connections(grant.access_token)
    if not connections:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Xero organisations found for this account",
        )
    context_id = connections[0].get("tenantId")

    await provider.store.save(
        provider.name,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        expires_at=utcnow() + timedelta(seconds=grant.expires_in),
        associated_context_id=context_id,
    )
    logger.info("Xero connected to organisation %s (%d available)", context_id, len(connections))
    return XeroConnectResponse(
        success=True,
        context_id=context_id,
        connections=[
            {"tenantId": c.get("tenantId"), "tenantName": c.get("tenantName")}
            for c in connections
        ],
    )


@router.post(
    "/xero/context",
    dependencies=[AdminOnly],
    summary="Choose which Xero organisation the stored credential acts on",
)
async def select_xero_context(body: SelectContextRequest, credentials: Credentials) -> dict:
    updated = await credentials.xero.store.set_context(credentials.xero.name, body.context_id)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No stored Xero credential; connect first",
        )
    return {"success": True, "contextId": body.context_id, "contextName": body.context_name}


@router.post(
    "/{name}/invalidate",
    dependencies=[AdminOnly],
    summary="Force the next token request for an integration to refresh",
)
async def invalidate_token(name: str, credentials: Credentials) -> dict:
    provider = credentials.get(name)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown integration '{name}'")
    provider.invalidate()
    return {"success": True, "integration": name}


@router.get(
    "/xero/status",
    response_model=IntegrationCredentialRead,
    dependencies=[AdminOnly],
    summary="Stored Xero credential metadata (no token material)",
)
async def xero_status(credentials: Credentials) -> IntegrationCredentialRead:
    described = await credentials.xero.store.describe(credentials.xero.name)
    if described is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No stored Xero credential; connect first",
        )
    return described


# ── Consumers ────────────────────────────────────────────────


@router.get("/zoom/users", summary="Active Zoom users available as webinar hosts")
async def zoom_users(credentials: Credentials) -> dict:
    users = await list_zoom_users(credentials.zoom, settings.zoom_api_base_url)
    return {"users": users}


@router.get(
    "/xero/invoices/{invoice_id}/pdf",
    response_class=Response,
    summary="Download an invoice PDF from the connected Xero organisation",
)
async def xero_invoice_pdf(invoice_id: str, credentials: Credentials) -> Response:
    content = await fetch_xero_invoice_pdf(credentials.xero, settings.xero_api_base_url, invoice_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="invoice-{invoice_id}.pdf"'},
    )
