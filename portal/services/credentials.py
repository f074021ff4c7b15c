"""Upstream credential lifecycle: keep a usable bearer token per integration.

Two grant shapes are supported:

* :class:`ClientCredentialsProvider` exchanges account/client credentials for
  a token directly (Zoom server-to-server). The token lives in an in-memory
  :class:`TokenSlot` only.
* :class:`RotatingRefreshTokenProvider` keeps one persisted row holding an
  access/refresh pair (Xero). Every refresh consumes the old refresh token at
  the provider, so the row is overwritten with a compare-and-swap on its
  ``version`` column.

Both run refreshes through a :class:`SingleFlight` keyed by integration name,
so concurrent callers in one process share a single exchange. Any failure to
produce a token raises :class:`UpstreamAuthError`.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
from sqlalchemy import update
from sqlalchemy.orm import sessionmaker
from sqlmodel import select

from portal.core.cache import TokenSlot, WallClock
from portal.core.config import Settings
from portal.core.errors import CredentialConflictError, UpstreamAuthError
from portal.core.security import basic_auth_header, decrypt_value, encrypt_value
from portal.core.singleflight import SingleFlight
from portal.models.base import utcnow
from portal.models.credential import IntegrationCredential, IntegrationCredentialRead

logger = logging.getLogger(__name__)

ZOOM = "zoom"
XERO = "xero"

DEFAULT_EXPIRES_IN = 3600
HTTP_TIMEOUT = 15

HttpClientFactory = Callable[[], httpx.AsyncClient]


def _default_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=HTTP_TIMEOUT)


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime
    context_id: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    """Parsed token-endpoint response."""
    access_token: str
    refresh_token: str | None
    expires_in: int


@dataclass(frozen=True)
class StoredCredential:
    """Decrypted view of the persisted row."""
    id: uuid.UUID
    access_token: str
    refresh_token: str
    associated_context_id: str | None
    expires_at: datetime
    version: int


# ── Token endpoint ────────────────────────────────────────────


async def request_token(
    integration: str,
    http_client: HttpClientFactory,
    token_url: str,
    client_id: str,
    client_secret: str,
    form: dict[str, str],
) -> TokenGrant:
    """POST a form-encoded grant with basic client auth and parse the JSON reply."""
    headers = {
        "Authorization": basic_auth_header(client_id, client_secret),
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }
    try:
        async with http_client() as client:
            response = await client.post(token_url, data=form, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("%s token endpoint unreachable: %s", integration, exc)
        raise UpstreamAuthError(integration, "token endpoint unreachable") from exc

    if not response.is_success:
        logger.error(
            "%s token exchange (%s) failed with HTTP %s",
            integration, form.get("grant_type"), response.status_code,
        )
        raise UpstreamAuthError(
            integration, f"token exchange rejected (HTTP {response.status_code})"
        )

    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamAuthError(integration, "token endpoint returned invalid JSON") from exc

    if not isinstance(data, dict) or data.get("error") or not data.get("access_token"):
        error = data.get("error") if isinstance(data, dict) else None
        raise UpstreamAuthError(integration, f"no access token in response ({error or 'unknown'})")

    try:
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError):
        expires_in = DEFAULT_EXPIRES_IN

    return TokenGrant(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=expires_in,
    )


# ── Client-credentials grant ──────────────────────────────────


class ClientCredentialsProvider:
    """Account-level token cached in memory until it nears expiry."""

    def __init__(
        self,
        name: str,
        token_url: str,
        account_id: str,
        client_id: str,
        client_secret: str,
        *,
        safety_window: timedelta = timedelta(seconds=60),
        slot: TokenSlot[AccessToken] | None = None,
        flight: SingleFlight | None = None,
        clock: WallClock = utcnow,
        http_client: HttpClientFactory = _default_http_client,
    ) -> None:
        self.name = name
        self.token_url = token_url
        self.account_id = account_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.safety_window = safety_window
        self.slot = slot if slot is not None else TokenSlot(clock)
        self.flight = flight if flight is not None else SingleFlight()
        self._clock = clock
        self.http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.account_id and self.client_id and self.client_secret)

    async def get_valid_token(self) -> AccessToken:
        cached = self.slot.get(self.safety_window)
        if cached is not None:
            return cached
        return await self.flight.do(self.name, self._exchange)

    def invalidate(self) -> None:
        self.slot.clear()

    async def _exchange(self) -> AccessToken:
        # A waiter that queued behind a finished exchange may find the slot refilled
        cached = self.slot.get(self.safety_window)
        if cached is not None:
            return cached
        if not self.configured:
            raise UpstreamAuthError(self.name, "credentials not configured")

        grant = await request_token(
            self.name,
            self.http_client,
            self.token_url,
            self.client_id,
            self.client_secret,
            {"grant_type": "account_credentials", "account_id": self.account_id},
        )
        token = AccessToken(
            token=grant.access_token,
            expires_at=self._clock() + timedelta(seconds=grant.expires_in),
        )
        self.slot.put(token, token.expires_at)
        logger.info("%s access token issued, valid for %ss", self.name, grant.expires_in)
        return token


# ── Persisted rotating credential ─────────────────────────────


class CredentialStore:
    """The single authoritative credential row per integration."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def load(self, integration: str) -> StoredCredential | None:
        async with self._session_factory() as session:
            stmt = select(IntegrationCredential).where(
                IntegrationCredential.integration == integration
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return StoredCredential(
            id=row.id,
            access_token=decrypt_value(row.access_token),
            refresh_token=decrypt_value(row.refresh_token),
            associated_context_id=row.associated_context_id,
            expires_at=row.expires_at,
            version=row.version,
        )

    async def describe(self, integration: str) -> IntegrationCredentialRead | None:
        """Row metadata for status views; the tokens stay encrypted."""
        async with self._session_factory() as session:
            stmt = select(IntegrationCredential).where(
                IntegrationCredential.integration == integration
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return IntegrationCredentialRead.model_validate(row, from_attributes=True)

    async def compare_and_swap(
        self,
        current: StoredCredential,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> StoredCredential:
        """Overwrite the row only if it is still at ``current.version``."""
        new_version = current.version + 1
        async with self._session_factory() as session:
            stmt = (
                update(IntegrationCredential)
                .where(
                    IntegrationCredential.id == current.id,
                    IntegrationCredential.version == current.version,
                )
                .values(
                    access_token=encrypt_value(access_token),
                    refresh_token=encrypt_value(refresh_token),
                    expires_at=expires_at,
                    version=new_version,
                    updated_at=utcnow(),
                )
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                raise CredentialConflictError(
                    f"credential {current.id} moved past version {current.version}"
                )
            await session.commit()
        return StoredCredential(
            id=current.id,
            access_token=access_token,
            refresh_token=refresh_token,
            associated_context_id=current.associated_context_id,
            expires_at=expires_at,
            version=new_version,
        )

    async def save(
        self,
        integration: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        associated_context_id: str | None = None,
    ) -> StoredCredential:
        """Replace the credential outright (initial authorisation / reconnect)."""
        async with self._session_factory() as session:
            stmt = select(IntegrationCredential).where(
                IntegrationCredential.integration == integration
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is None:
                row = IntegrationCredential(
                    integration=integration,
                    access_token=encrypt_value(access_token),
                    refresh_token=encrypt_value(refresh_token),
                    associated_context_id=associated_context_id,
                    expires_at=expires_at,
                )
            else:
                row.access_token = encrypt_value(access_token)
                row.refresh_token = encrypt_value(refresh_token)
                row.associated_context_id = associated_context_id
                row.expires_at = expires_at
                row.version += 1
                row.updated_at = utcnow()
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return StoredCredential(
            id=row.id,
            access_token=access_token,
            refresh_token=refresh_token,
            associated_context_id=row.associated_context_id,
            expires_at=row.expires_at,
            version=row.version,
        )

    async def set_context(self, integration: str, context_id: str) -> bool:
        """Point the credential at a different provider organisation."""
        async with self._session_factory() as session:
            stmt = (
                update(IntegrationCredential)
                .where(IntegrationCredential.integration == integration)
                .values(associated_context_id=context_id, updated_at=utcnow())
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1


class RotatingRefreshTokenProvider:
    """Persisted access/refresh pair, rotated when it nears expiry."""

    def __init__(
        self,
        name: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        store: CredentialStore,
        *,
        safety_window: timedelta = timedelta(minutes=5),
        max_attempts: int = 3,
        flight: SingleFlight | None = None,
        clock: WallClock = utcnow,
        http_client: HttpClientFactory = _default_http_client,
    ) -> None:
        self.name = name
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.store = store
        self.safety_window = safety_window
        self.max_attempts = max(1, max_attempts)
        self.flight = flight if flight is not None else SingleFlight()
        self._clock = clock
        self.http_client = http_client
        self._force_refresh = False

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def get_valid_token(self) -> AccessToken:
        if not self._force_refresh:
            current = await self._load_required()
            if self._is_fresh(current):
                return self._to_token(current)
        return await self.flight.do(self.name, self._refresh)

    def invalidate(self) -> None:
        self._force_refresh = True

    def _is_fresh(self, credential: StoredCredential) -> bool:
        return credential.expires_at - self._clock() > self.safety_window

    @staticmethod
    def _to_token(credential: StoredCredential) -> AccessToken:
        return AccessToken(
            token=credential.access_token,
            expires_at=credential.expires_at,
            context_id=credential.associated_context_id,
        )

    async def _load_required(self) -> StoredCredential:
        credential = await self.store.load(self.name)
        if credential is None:
            raise UpstreamAuthError(self.name, "no stored credential; authenticate first")
        return credential

    async def _refresh(self) -> AccessToken:
        if not self.configured:
            raise UpstreamAuthError(self.name, "credentials not configured")

        forced = self._force_refresh
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            current = await self._load_required()
            if not forced and self._is_fresh(current):
                # Another instance rotated the pair since we last looked
                return self._to_token(current)

            try:
                grant = await request_token(
                    self.name,
                    self.http_client,
                    self.token_url,
                    self.client_id,
                    self.client_secret,
                    {"grant_type": "refresh_token", "refresh_token": current.refresh_token},
                )
            except UpstreamAuthError:
                # A concurrent rotation elsewhere consumes our refresh token first
                if await self._rotated_elsewhere(current):
                    return self._to_token(await self._load_required())
                raise

            if not grant.refresh_token:
                raise UpstreamAuthError(self.name, "refresh response carried no refresh token")

            try:
                updated = await self.store.compare_and_swap(
                    current,
                    access_token=grant.access_token,
                    refresh_token=grant.refresh_token,
                    expires_at=self._clock() + timedelta(seconds=grant.expires_in),
                )
            except CredentialConflictError as exc:
                last_error = exc
                logger.warning(
                    "%s credential changed during refresh (attempt %d/%d)",
                    self.name, attempt, self.max_attempts,
                )
                forced = False
                continue

            self._force_refresh = False
            logger.info("%s credential rotated to version %d", self.name, updated.version)
            return self._to_token(updated)

        raise UpstreamAuthError(
            self.name, f"refresh did not settle after {self.max_attempts} attempts"
        ) from last_error

    async def _rotated_elsewhere(self, seen: StoredCredential) -> bool:
        latest = await self.store.load(self.name)
        return latest is not None and latest.version != seen.version and self._is_fresh(latest)

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        """Authorization-code grant used when an administrator (re)connects."""
        if not self.configured:
            raise UpstreamAuthError(self.name, "credentials not configured")
        return await request_token(
            self.name,
            self.http_client,
            self.token_url,
            self.client_id,
            self.client_secret,
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
        )


# ── Registry ──────────────────────────────────────────────────


class CredentialRegistry:
    """One provider per upstream integration, held on ``app.state``."""

    def __init__(
        self,
        zoom: ClientCredentialsProvider,
        xero: RotatingRefreshTokenProvider,
    ) -> None:
        self.zoom = zoom
        self.xero = xero

    def get(self, name: str) -> ClientCredentialsProvider | RotatingRefreshTokenProvider | None:
        return {ZOOM: self.zoom, XERO: self.xero}.get(name)

    def configured(self) -> dict[str, bool]:
        return {ZOOM: self.zoom.configured, XERO: self.xero.configured}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: sessionmaker,
        *,
        clock: WallClock = utcnow,
        http_client: HttpClientFactory = _default_http_client,
    ) -> CredentialRegistry:
        flight = SingleFlight()
        zoom = ClientCredentialsProvider(
            ZOOM,
            settings.zoom_token_url,
            settings.zoom_account_id,
            settings.zoom_client_id,
            settings.zoom_client_secret,
            safety_window=timedelta(seconds=settings.zoom_safety_window_seconds),
            flight=flight,
            clock=clock,
            http_client=http_client,
        )
        xero = RotatingRefreshTokenProvider(
            XERO,
            settings.xero_token_url,
            settings.xero_client_id,
            settings.xero_client_secret,
            CredentialStore(session_factory),
            safety_window=timedelta(seconds=settings.xero_safety_window_seconds),
            max_attempts=settings.xero_refresh_max_attempts,
            flight=flight,
            clock=clock,
            http_client=http_client,
        )
        return cls(zoom=zoom, xero=xero)
