"""Shared test fixtures: async SQLite in-memory DB + test client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import portal.models  # noqa: E402, F401
from portal.core.config import get_settings  # noqa: E402
from portal.core.database import get_session  # noqa: E402
from portal.main import app, build_tenant_resolver  # noqa: E402
from portal.services.credentials import CredentialRegistry  # noqa: E402

ADMIN_HEADERS = {"Authorization": "Bearer test-admin-key"}


class FakeClock:
    """Controllable monotonic + wall clock for TTL / expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, 12, 0, 0)
        self._mono = 1000.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._mono

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._mono += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture(scope="session")
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session, test_session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override and test-bound services."""

    async def _override_session():
        yield session

    original_state = (app.state.tenant_resolver, app.state.credentials)
    app.dependency_overrides[get_session] = _override_session
    app.state.tenant_resolver = build_tenant_resolver(test_session_factory)
    app.state.credentials = CredentialRegistry.from_settings(get_settings(), test_session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    app.state.tenant_resolver, app.state.credentials = original_state
