"""Authenticated calls to the upstream APIs the portal consumes.

Each call asks its provider for a valid bearer token first. A 401 from the
API means the token was revoked early: the provider is invalidated and the
call is made once more with a fresh token.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from portal.core.errors import UpstreamAuthError, UpstreamRequestError
from portal.services.credentials import (
    AccessToken,
    ClientCredentialsProvider,
    RotatingRefreshTokenProvider,
)

logger = logging.getLogger(__name__)

Provider = ClientCredentialsProvider | RotatingRefreshTokenProvider


async def _authorized_get(
    provider: Provider,
    url: str,
    *,
    accept: str = "application/json",
    params: dict[str, str] | None = None,
    require_context: bool = False,
) -> httpx.Response:
    response = await _send(provider, url, accept, params, require_context)
    if response.status_code == 401:
        logger.warning("%s rejected its access token; refreshing and retrying", provider.name)
        provider.invalidate()
        response = await _send(provider, url, accept, params, require_context)
        if response.status_code == 401:
            raise UpstreamAuthError(provider.name, "access token rejected after refresh")
    if not response.is_success:
        raise UpstreamRequestError(
            provider.name,
            f"GET {httpx.URL(url).path} failed",
            status_code=response.status_code,
        )
    return response


async def _send(
    provider: Provider,
    url: str,
    accept: str,
    params: dict[str, str] | None,
    require_context: bool,
) -> httpx.Response:
    token = await provider.get_valid_token()
    headers = _headers(provider.name, token, accept, require_context)
    try:
        async with provider.http_client() as client:
            return await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamRequestError(provider.name, f"{url} unreachable") from exc


def _headers(integration: str, token: AccessToken, accept: str, require_context: bool) -> dict:
    headers = {"Authorization": f"Bearer {token.token}", "Accept": accept}
    if require_context:
        if not token.context_id:
            raise UpstreamAuthError(integration, "no organisation selected for the credential")
        headers["xero-tenant-id"] = token.context_id
    return headers


# ── Zoom ──────────────────────────────────────────────────────


async def list_zoom_users(provider: ClientCredentialsProvider, api_base_url: str) -> list[dict[str, Any]]:
    """Active users on the Zoom account (webinar hosts)."""
    response = await _authorized_get(
        provider, f"{api_base_url.rstrip('/')}/users", params={"status": "active"}
    )
    data = response.json()
    users = data.get("users") if isinstance(data, dict) else None
    return users if isinstance(users, list) else []


# ── Xero ──────────────────────────────────────────────────────


async def fetch_xero_invoice_pdf(
    provider: RotatingRefreshTokenProvider, api_base_url: str, invoice_id: str
) -> bytes:
    response = await _authorized_get(
        provider,
        f"{api_base_url.rstrip('/')}/Invoices/{invoice_id}",
        accept="application/pdf",
        require_context=True,
    )
    logger.info("Fetched Xero invoice %s (%d bytes)", invoice_id, len(response.content))
    return response.content
