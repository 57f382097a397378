"""Shared test fixtures: in-memory SQLite database and an authenticated API client."""

import os

# Must be set before taxrules.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taxrules.auth.middleware import hash_api_key
from taxrules.database import Base, get_db
from taxrules.main import app
from taxrules.models import Tenant

API_KEY = "sk_test_tenant_a"
OTHER_API_KEY = "sk_test_tenant_b"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


async def _make_tenant(session_maker, name: str, api_key: str) -> Tenant:
    async with session_maker() as session:
        tenant = Tenant(
            tenant_id=str(uuid4()),
            name=name,
            api_key_hash=hash_api_key(api_key),
            created_at=datetime.now(timezone.utc),
        )
        session.add(tenant)
        await session.commit()
        return tenant


@pytest.fixture
async def tenant(session_maker) -> Tenant:
    return await _make_tenant(session_maker, "Tenant A", API_KEY)


@pytest.fixture
async def other_tenant(session_maker) -> Tenant:
    return await _make_tenant(session_maker, "Tenant B", OTHER_API_KEY)


@pytest.fixture
async def client(session_maker):
    """HTTP client against the app with get_db bound to the test database."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {API_KEY}"},
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def base_url(tenant) -> str:
    return f"/tenants/{tenant.tenant_id}/tax"
