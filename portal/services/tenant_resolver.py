"""Tenant resolution: map an inbound hostname to the tenant that owns it.

Resolution order:

1. process-local cache, keyed by hostname
2. verified ``tenant_domain`` row matching the hostname exactly
3. verified row matching the base domain (last two labels), so any
   subdomain of a registered root resolves without wildcard rows
4. the default tenant row, then a built-in default value

Resolution never raises: store errors are logged and the request carries on
with the default tenant.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from portal.core.cache import TTLCache
from portal.models.tenant import Tenant, TenantContext, TenantDomain

logger = logging.getLogger(__name__)

FORWARDED_HOST_HEADER = "x-forwarded-host"
HOST_HEADER = "host"


class ResolutionSource(StrEnum):
    CACHE = "cache"
    DOMAIN = "domain"
    BASE_DOMAIN = "base_domain"
    DEFAULT = "default"
    FALLBACK = "fallback"


# ── Hostname helpers ──────────────────────────────────────────


def _first_header(headers: Mapping[str, Any], name: str) -> str:
    getlist = getattr(headers, "getlist", None)
    if getlist is not None:
        values = getlist(name)
        value = values[0] if values else ""
    else:
        value = headers.get(name) or headers.get(name.title()) or ""
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
    # Proxies chain forwarded hosts as "client, proxy1, ..."
    return str(value).split(",")[0].strip()


def strip_port(host: str) -> str:
    if host.startswith("["):
        # IPv6 literal, e.g. "[::1]:8080"
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def extract_hostname(headers: Mapping[str, Any]) -> str:
    """Hostname the client addressed, preferring the proxy-forwarded host."""
    host = _first_header(headers, FORWARDED_HOST_HEADER) or _first_header(headers, HOST_HEADER)
    return strip_port(host).rstrip(".").lower()


def base_domain(hostname: str) -> str:
    """``staging.example.com`` -> ``example.com``; two-label names are returned as-is."""
    parts = hostname.split(".")
    if len(parts) > 2:
        return ".".join(parts[-2:])
    return hostname


# ── Store access ──────────────────────────────────────────────


class TenantStore:
    """Read-only queries against ``tenant`` / ``tenant_domain``."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def find_verified_domain(self, domain: str) -> uuid.UUID | None:
        async with self._session_factory() as session:
            stmt = select(TenantDomain.tenant_id).where(
                TenantDomain.domain == domain,
                TenantDomain.is_verified == True,  # noqa: E712
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_active_tenant(self, tenant_id: uuid.UUID) -> TenantContext | None:
        async with self._session_factory() as session:
            return await self._fetch(session, tenant_id, active_only=True)

    async def get_tenant(self, tenant_id: uuid.UUID) -> TenantContext | None:
        async with self._session_factory() as session:
            return await self._fetch(session, tenant_id, active_only=False)

    @staticmethod
    async def _fetch(
        session: AsyncSession, tenant_id: uuid.UUID, *, active_only: bool
    ) -> TenantContext | None:
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        if active_only:
            stmt = stmt.where(Tenant.is_active == True)  # noqa: E712
        result = await session.execute(stmt)
        tenant = result.scalar_one_or_none()
        return TenantContext.from_row(tenant) if tenant is not None else None


# ── Resolver ──────────────────────────────────────────────────


class TenantResolver:
    """Resolve request headers to a :class:`TenantContext`. Never raises."""

    def __init__(
        self,
        store: TenantStore,
        cache: TTLCache[TenantContext],
        default_tenant_id: uuid.UUID | str,
    ) -> None:
        self.store = store
        self.cache = cache
        self.default_tenant_id = uuid.UUID(str(default_tenant_id))

    async def resolve(self, headers: Mapping[str, Any]) -> TenantContext:
        tenant, _source = await self.resolve_with_source(headers)
        return tenant

    async def resolve_with_source(
        self, headers: Mapping[str, Any]
    ) -> tuple[TenantContext, ResolutionSource]:
        hostname = extract_hostname(headers)
        try:
            return await self._resolve_hostname(hostname)
        except Exception:
            logger.exception("Tenant resolution failed for host %r; using default tenant", hostname)
            return TenantContext.builtin_default(self.default_tenant_id), ResolutionSource.FALLBACK

    async def _resolve_hostname(self, hostname: str) -> tuple[TenantContext, ResolutionSource]:
        if hostname:
            cached = self.cache.get(hostname)
            if cached is not None:
                return cached, ResolutionSource.CACHE

            matched, tenant = await self._lookup(hostname)
            source = ResolutionSource.DOMAIN
            # the base domain is only consulted when the host itself is unregistered
            if not matched:
                root = base_domain(hostname)
                if root != hostname:
                    _matched, tenant = await self._lookup(root)
                    source = ResolutionSource.BASE_DOMAIN

            if tenant is not None:
                self.cache.put(hostname, tenant)
                return tenant, source

        logger.warning("No tenant registered for host %r; using default tenant", hostname)
        default = await self.store.get_tenant(self.default_tenant_id)
        if default is not None:
            return default, ResolutionSource.DEFAULT
        return TenantContext.builtin_default(self.default_tenant_id), ResolutionSource.FALLBACK

    async def _lookup(self, domain: str) -> tuple[bool, TenantContext | None]:
        """Whether ``domain`` has a verified row, and its tenant if active."""
        tenant_id = await self.store.find_verified_domain(domain)
        if tenant_id is None:
            return False, None
        tenant = await self.store.get_active_tenant(tenant_id)
        if tenant is None:
            logger.warning("Domain %r belongs to inactive tenant %s", domain, tenant_id)
        return True, tenant

    def clear_cache(self) -> None:
        """Drop every cached hostname (after administrators edit tenants/domains)."""
        self.cache.clear()
        logger.info("Tenant cache cleared")
