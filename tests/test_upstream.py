"""Tests for the routes that call Zoom and Xero with managed tokens."""

from datetime import timedelta

import httpx
import pytest
from httpx import AsyncClient

from conftest import ADMIN_HEADERS
from portal.core.config import get_settings
from portal.main import app
from portal.models.base import utcnow
from portal.services.credentials import CredentialRegistry

PDF = b"%PDF-1.4 invoice"


class UpstreamApi:
    """Token endpoints plus the Zoom / Xero APIs behind one MockTransport."""

    def __init__(self, *api_responses: httpx.Response) -> None:
        self.api_responses = list(api_responses)
        self.api_requests: list[httpx.Request] = []
        self.token_requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(("/oauth/token", "/connect/token")):
            self.token_requests.append(request)
            n = len(self.token_requests)
            return httpx.Response(
                200,
                json={"access_token": f"access-{n}", "refresh_token": f"refresh-{n}", "expires_in": 1800},
            )
        self.api_requests.append(request)
        if len(self.api_responses) > 1:
            return self.api_responses.pop(0)
        return self.api_responses[0]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _install(api: UpstreamApi, test_session_factory) -> CredentialRegistry:
    settings = get_settings().model_copy(update={
        "zoom_account_id": "acct-1",
        "zoom_client_id": "zoom-client",
        "zoom_client_secret": "zoom-secret",
        "xero_client_id": "xero-client",
        "xero_client_secret": "xero-secret",
    })
    registry = CredentialRegistry.from_settings(settings, test_session_factory, http_client=api.client)
    app.state.credentials = registry
    return registry


async def _connect_xero(registry: CredentialRegistry, context_id: str | None = "org-9") -> None:
    await registry.xero.store.save(
        registry.xero.name,
        access_token="stored-access",
        refresh_token="stored-refresh",
        expires_at=utcnow() + timedelta(minutes=30),
        associated_context_id=context_id,
    )


# ── Zoom ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_zoom_users_uses_bearer_token(client: AsyncClient, test_session_factory):
    api = UpstreamApi(httpx.Response(200, json={"users": [{"id": "host-a", "email": "a@example.org"}]}))
    _install(api, test_session_factory)

    resp = await client.get("/v1/integrations/zoom/users")

    assert resp.status_code == 200
    assert resp.json() == {"users": [{"id": "host-a", "email": "a@example.org"}]}
    (request,) = api.api_requests
    assert request.url == "https://api.zoom.us/v2/users?status=active"
    assert request.headers["authorization"] == "Bearer access-1"
    assert len(api.token_requests) == 1


@pytest.mark.asyncio
async def test_zoom_users_refreshes_once_on_401(client: AsyncClient, test_session_factory):
    api = UpstreamApi(httpx.Response(401), httpx.Response(200, json={"users": []}))
    _install(api, test_session_factory)

    resp = await client.get("/v1/integrations/zoom/users")

    assert resp.status_code == 200
    assert [r.headers["authorization"] for r in api.api_requests] == [
        "Bearer access-1",
        "Bearer access-2",
    ]


@pytest.mark.asyncio
async def test_zoom_users_upstream_failure_is_502(client: AsyncClient, test_session_factory):
    _install(UpstreamApi(httpx.Response(429, json={"message": "rate limited"})), test_session_factory)

    resp = await client.get("/v1/integrations/zoom/users")

    assert resp.status_code == 502
    assert resp.json()["error"] == "upstream_request_failed"
    assert resp.json()["upstreamStatus"] == 429


@pytest.mark.asyncio
async def test_zoom_users_unconfigured_is_503(client: AsyncClient):
    resp = await client.get("/v1/integrations/zoom/users")

    assert resp.status_code == 503
    assert resp.json()["error"] == "upstream_auth_unavailable"
    assert resp.json()["integration"] == "zoom"


# ── Xero ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_xero_invoice_pdf(client: AsyncClient, test_session_factory):
    api = UpstreamApi(httpx.Response(200, content=PDF, headers={"content-type": "application/pdf"}))
    registry = _install(api, test_session_factory)
    await _connect_xero(registry)

    resp = await client.get("/v1/integrations/xero/invoices/inv-42/pdf")

    assert resp.status_code == 200
    assert resp.content == PDF
    assert resp.headers["content-type"] == "application/pdf"
    (request,) = api.api_requests
    assert request.url == "https://api.xero.com/api.xro/2.0/Invoices/inv-42"
    assert request.headers["authorization"] == "Bearer stored-access"
    assert request.headers["xero-tenant-id"] == "org-9"
    assert request.headers["accept"] == "application/pdf"
    assert api.token_requests == []


@pytest.mark.asyncio
async def test_xero_invoice_without_organisation_is_503(client: AsyncClient, test_session_factory):
    api = UpstreamApi(httpx.Response(200, content=PDF))
    registry = _install(api, test_session_factory)
    await _connect_xero(registry, context_id=None)

    resp = await client.get("/v1/integrations/xero/invoices/inv-42/pdf")

    assert resp.status_code == 503
    assert resp.json()["integration"] == "xero"
    assert api.api_requests == []


@pytest.mark.asyncio
async def test_missing_xero_invoice_is_502(client: AsyncClient, test_session_factory):
    registry = _install(UpstreamApi(httpx.Response(404)), test_session_factory)
    await _connect_xero(registry)

    resp = await client.get("/v1/integrations/xero/invoices/missing/pdf")

    assert resp.status_code == 502
    assert resp.json()["upstreamStatus"] == 404


# ── Credential status ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_xero_status_hides_tokens(client: AsyncClient, test_session_factory):
    registry = _install(UpstreamApi(httpx.Response(200)), test_session_factory)
    await _connect_xero(registry, context_id="org-status")

    assert (await client.get("/v1/integrations/xero/status")).status_code == 401

    resp = await client.get("/v1/integrations/xero/status", headers=ADMIN_HEADERS)

    assert resp.status_code == 200
    data = resp.json()
    assert data["integration"] == "xero"
    assert data["associated_context_id"] == "org-status"
    assert data["version"] >= 1
    assert "access_token" not in data
    assert "refresh_token" not in data
