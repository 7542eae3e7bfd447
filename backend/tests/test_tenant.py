"""Tests for tenant resolution and partition isolation."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import Conflict, NotFound, TenantNotFound
from leave_ledger.models.audit import AuditLog
from leave_ledger.models.enums import AuditAction
from leave_ledger.services.tenant import create_tenant, get_tenant

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.models.tenant import Tenant
    from leave_ledger.services.tenant import TenantContext, TenantResolver

EMPLOYEE_ID = uuid.uuid4()


async def test_resolve_unknown_tenant(db_session: AsyncSession, resolver: TenantResolver) -> None:
    with pytest.raises(TenantNotFound):
        await resolver.resolve(db_session, uuid.uuid4())


async def test_resolve_inactive_tenant(db_session: AsyncSession, resolver: TenantResolver, tenant: Tenant) -> None:
    tenant.is_active = False
    await db_session.commit()
    with pytest.raises(TenantNotFound):
        await resolver.resolve(db_session, tenant.id)


async def test_resolver_reuses_lock_registry(resolver: TenantResolver) -> None:
    tenant_id = uuid.uuid4()
    assert resolver.locks_for(tenant_id) is resolver.locks_for(tenant_id)
    assert resolver.locks_for(tenant_id) is not resolver.locks_for(uuid.uuid4())


async def test_create_tenant_writes_audit(db_session: AsyncSession) -> None:
    tenant = await create_tenant(db_session, "Globex")
    result = await db_session.execute(select(AuditLog).where(col(AuditLog.entity_id) == tenant.id))
    log = result.scalar_one()
    assert log.action == AuditAction.CREATE
    assert log.tenant_id == tenant.id


async def test_create_tenant_duplicate_id(db_session: AsyncSession, tenant: Tenant) -> None:
    with pytest.raises(Conflict):
        await create_tenant(db_session, "Copycat", tenant_id=tenant.id)


async def test_get_tenant_not_found(db_session: AsyncSession) -> None:
    with pytest.raises(TenantNotFound):
        await get_tenant(db_session, uuid.uuid4())


async def test_ledger_isolated_between_tenants(
    db_session: AsyncSession,
    resolver: TenantResolver,
    ctx: TenantContext,
) -> None:
    other = await create_tenant(db_session, "Initech")
    other_ctx = await resolver.resolve(db_session, other.id)

    await ctx.ledger.append_transaction(EMPLOYEE_ID, "earned", "used", -4)

    assert await ctx.ledger.current_balance(EMPLOYEE_ID, "earned") == Decimal(11)
    assert await other_ctx.ledger.current_balance(EMPLOYEE_ID, "earned") == Decimal(15)
    assert await other_ctx.ledger.history(EMPLOYEE_ID) == []


async def test_leaves_isolated_between_tenants(
    db_session: AsyncSession,
    resolver: TenantResolver,
    ctx: TenantContext,
) -> None:
    other = await create_tenant(db_session, "Umbrella")
    other_ctx = await resolver.resolve(db_session, other.id)

    leave = await ctx.leaves.create(EMPLOYEE_ID, "casual", date(2025, 3, 3), date(2025, 3, 4))
    leave_id = leave.id

    with pytest.raises(NotFound):
        await other_ctx.leaves.get(leave_id)
    listing = await other_ctx.leaves.list_leaves()
    assert listing.total == 0
