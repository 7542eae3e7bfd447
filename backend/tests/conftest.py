from __future__ import annotations

import os

# Tests run against an in-memory SQLite database unless DATABASE_URL points elsewhere.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from typing import TYPE_CHECKING  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from leave_ledger.config import get_settings  # noqa: E402
from leave_ledger.db import build_engine, get_session  # noqa: E402
from leave_ledger.main import app  # noqa: E402
from leave_ledger.models import SQLModel  # noqa: E402
from leave_ledger.services.employee import InMemoryEmployeeService, set_employee_service  # noqa: E402
from leave_ledger.services.tenant import (  # noqa: E402
    TenantResolver,
    create_tenant,
    get_tenant_resolver,
    set_tenant_resolver,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from leave_ledger.models.tenant import Tenant
    from leave_ledger.services.tenant import TenantContext


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Create a fresh database per test.

    In-memory SQLite lives as long as the engine's single shared connection,
    so every test starts from empty tables.
    """
    _engine = build_engine(get_settings().database_url)
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def resolver() -> Iterator[TenantResolver]:
    """Fresh tenant resolver (and lock registry) for each test."""
    previous = get_tenant_resolver()
    _resolver = TenantResolver()
    set_tenant_resolver(_resolver)
    yield _resolver
    set_tenant_resolver(previous)


@pytest.fixture
def employee_service() -> Iterator[InMemoryEmployeeService]:
    svc = InMemoryEmployeeService()
    set_employee_service(svc)
    yield svc
    set_employee_service(InMemoryEmployeeService())


@pytest.fixture
async def tenant(db_session: AsyncSession) -> Tenant:
    return await create_tenant(db_session, "Acme Corp")


@pytest.fixture
async def ctx(db_session: AsyncSession, resolver: TenantResolver, tenant: Tenant) -> TenantContext:
    return await resolver.resolve(db_session, tenant.id)


@pytest.fixture
async def async_client(db_session: AsyncSession, resolver: TenantResolver) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
