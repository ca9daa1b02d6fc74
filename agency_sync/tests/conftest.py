"""Async test fixtures for the sync engine using SQLite."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from agency_sync.config import PROVIDERS, SyncSettings
from agency_sync.database import build_engine, build_session_factory, get_db
from agency_sync.models.base import Base
from agency_sync.models.client import Client
from agency_sync.sync.rate_limit import RateLimiter


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = build_engine("sqlite+aiosqlite:///:memory:")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        hubspot_token="hs-test",
        monday_token="monday-test",
        xero_token="xero-test",
        xero_tenant_id="tenant-1",
        sheets_token="sheets-test",
        sheets_spreadsheet_id="sheet-1",
        google_token="google-test",
        slack_token="xoxb-test",
        page_size=2,
        sheets_batch_size=2,
    )


@pytest.fixture
def limiters() -> dict[str, RateLimiter]:
    return {p: RateLimiter(1000, 1.0, name=p) for p in PROVIDERS}


@pytest.fixture
def mock_transport() -> Callable[..., httpx.MockTransport]:
    """Build a MockTransport that records requests and answers from ``handler``."""

    def build(handler: Callable[[httpx.Request], Any], seen: list | None = None) -> httpx.MockTransport:
        def respond(request: httpx.Request) -> httpx.Response:
            if seen is not None:
                seen.append(request)
            result = handler(request)
            if isinstance(result, httpx.Response):
                return result
            return httpx.Response(200, json=result)

        return httpx.MockTransport(respond)

    return build


@pytest.fixture
def make_client(db: AsyncSession):
    """Insert and commit a canonical client."""

    async def make(name: str, **fields: Any) -> Client:
        fields.setdefault("status", "active")
        row = Client(name=name, **fields)
        db.add(row)
        await db.commit()
        return row

    return make


@pytest.fixture
def sync_engine(session_factory, settings):
    from agency_sync.sync.engine import SyncEngine

    return SyncEngine(session_factory, settings)


@pytest_asyncio.fixture
async def client(engine, session_factory, limiters, sync_engine):
    """HTTPX async test client against the sync API."""
    from agency_sync.app import app
    from agency_sync.deps import get_limiters, get_session_factory, get_sync_engine

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_limiters] = lambda: limiters
    app.dependency_overrides[get_sync_engine] = lambda: sync_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
