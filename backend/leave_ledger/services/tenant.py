"""Tenant context resolution.

Every engine operation runs against a ``TenantContext``: a session plus the
stores bound to one tenant's partition. Nothing below this module reads or
writes without the tenant id filter.
"""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.config import get_settings
from leave_ledger.exceptions import Conflict, TenantNotFound
from leave_ledger.models.enums import AuditAction, AuditEntityType
from leave_ledger.models.tenant import Tenant
from leave_ledger.services.attendance import AttendanceStore
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log
from leave_ledger.services.leave import LeaveStore
from leave_ledger.services.ledger import LedgerStore
from leave_ledger.services.locks import KeyedLocks
from leave_ledger.services.policy import PolicyConfig

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class TenantLocks:
    """Critical sections for one tenant's shared-mutation keys."""

    ledger: KeyedLocks = field(default_factory=KeyedLocks)
    attendance: KeyedLocks = field(default_factory=KeyedLocks)


@dataclass
class TenantContext:
    """Handles bound to one tenant's data partition."""

    tenant_id: uuid.UUID
    session: AsyncSession
    policies: PolicyConfig
    ledger: LedgerStore
    leaves: LeaveStore
    attendance: AttendanceStore


class TenantResolver:
    """Resolves tenant ids to contexts and owns each tenant's lock registry."""

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, TenantLocks] = {}

    def locks_for(self, tenant_id: uuid.UUID) -> TenantLocks:
        return self._locks.setdefault(tenant_id, TenantLocks())

    async def resolve(self, session: AsyncSession, tenant_id: uuid.UUID) -> TenantContext:
        """Return the context for ``tenant_id``. Raises TenantNotFound."""
        result = await session.execute(
            select(Tenant).where(col(Tenant.id) == tenant_id, col(Tenant.is_active).is_(True))
        )
        if result.scalar_one_or_none() is None:
            raise TenantNotFound(tenant_id)

        locks = self.locks_for(tenant_id)
        policies = PolicyConfig(session, tenant_id)
        return TenantContext(
            tenant_id=tenant_id,
            session=session,
            policies=policies,
            ledger=LedgerStore(
                session,
                tenant_id,
                policies,
                locks.ledger,
                max_retries=get_settings().ledger_append_max_retries,
            ),
            leaves=LeaveStore(session, tenant_id),
            attendance=AttendanceStore(session, tenant_id, locks.attendance),
        )


_tenant_resolver = TenantResolver()


def get_tenant_resolver() -> TenantResolver:
    """FastAPI dependency for the tenant resolver."""
    return _tenant_resolver


def set_tenant_resolver(resolver: TenantResolver) -> None:
    """Override the resolver (for testing or production wiring)."""
    global _tenant_resolver
    _tenant_resolver = resolver


# ---------------------------------------------------------------------------
# Tenant administration
# ---------------------------------------------------------------------------


async def create_tenant(
    session: AsyncSession,
    name: str,
    actor_id: uuid.UUID | None = None,
    tenant_id: uuid.UUID | None = None,
) -> Tenant:
    """Register a new tenant partition. Raises 409 if the id is taken."""
    if tenant_id is not None and await session.get(Tenant, tenant_id) is not None:
        msg = f"Tenant {tenant_id} already exists"
        raise Conflict(msg)
    tenant = Tenant(id=tenant_id or uuid.uuid4(), name=name)
    session.add(tenant)
    await session.flush()

    await write_audit_log(
        session,
        tenant_id=tenant.id,
        actor_id=actor_id,
        entity_type=AuditEntityType.TENANT,
        entity_id=tenant.id,
        action=AuditAction.CREATE,
        after_json=model_to_audit_dict(tenant),
    )

    await session.commit()
    await session.refresh(tenant)
    return tenant


async def get_tenant(session: AsyncSession, tenant_id: uuid.UUID) -> Tenant:
    result = await session.execute(select(Tenant).where(col(Tenant.id) == tenant_id))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise TenantNotFound(tenant_id)
    return tenant
