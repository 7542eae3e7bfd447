# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.exceptions import ValidationError
from leave_ledger.models.enums import AuditAction, AuditEntityType, LeaveCategory
from leave_ledger.models.policy import LeaveCategoryPolicy
from leave_ledger.schemas.policy import CategoryPolicy
from leave_ledger.services.audit import model_to_audit_dict, write_audit_log

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from leave_ledger.schemas.policy import PolicyUpdate


def _default(
    category: LeaveCategory,
    allocation: int,
    max_days: int = 0,
    validity_months: int = 0,
    min_balance: int = 0,
) -> CategoryPolicy:
    return CategoryPolicy(
        leave_category=category,
        annual_allocation=Decimal(allocation),
        carry_forward_enabled=max_days > 0,
        max_carryable_days=Decimal(max_days),
        validity_months=validity_months,
        minimum_eligible_balance=Decimal(min_balance),
        is_default=True,
    )


# Used for any category a tenant has not configured.
DEFAULT_POLICIES: dict[LeaveCategory, CategoryPolicy] = {
    LeaveCategory.CASUAL: _default(LeaveCategory.CASUAL, 10, max_days=3, validity_months=3, min_balance=2),
    LeaveCategory.SICK: _default(LeaveCategory.SICK, 10, max_days=5, validity_months=6, min_balance=3),
    LeaveCategory.EARNED: _default(LeaveCategory.EARNED, 15, max_days=15, validity_months=12, min_balance=5),
    LeaveCategory.COMPENSATORY: _default(LeaveCategory.COMPENSATORY, 2, max_days=2, validity_months=2, min_balance=1),
    LeaveCategory.MATERNITY: _default(LeaveCategory.MATERNITY, 90),
    LeaveCategory.PATERNITY: _default(LeaveCategory.PATERNITY, 15),
    LeaveCategory.BEREAVEMENT: _default(LeaveCategory.BEREAVEMENT, 3),
    LeaveCategory.UNPAID: _default(LeaveCategory.UNPAID, 0),
    LeaveCategory.SPECIAL: _default(LeaveCategory.SPECIAL, 5),
}


def parse_category(value: str | LeaveCategory) -> LeaveCategory:
    """Coerce a raw category string, raising ValidationError if unknown."""
    try:
        return LeaveCategory(value)
    except ValueError:
        msg = f"Unknown leave category: {value!r}"
        raise ValidationError(msg) from None


def _to_category_policy(row: LeaveCategoryPolicy) -> CategoryPolicy:
    return CategoryPolicy(
        leave_category=LeaveCategory(row.leave_category),
        annual_allocation=row.annual_allocation,
        carry_forward_enabled=row.carry_forward_enabled,
        max_carryable_days=row.max_carryable_days,
        validity_months=row.validity_months,
        minimum_eligible_balance=row.minimum_eligible_balance,
        is_default=False,
    )


class PolicyConfig:
    """Per-tenant leave category policies, falling back to built-in defaults.

    Returned policies are plain values, safe to hold across commits and
    rollbacks of the owning session.
    """

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._cache: dict[LeaveCategory, CategoryPolicy] = {}

    async def _get_row(self, category: LeaveCategory) -> LeaveCategoryPolicy | None:
        result = await self._session.execute(
            select(LeaveCategoryPolicy).where(
                col(LeaveCategoryPolicy.tenant_id) == self._tenant_id,
                col(LeaveCategoryPolicy.leave_category) == category.value,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, category: str | LeaveCategory) -> CategoryPolicy:
        category = parse_category(category)
        cached = self._cache.get(category)
        if cached is not None:
            return cached
        row = await self._get_row(category)
        policy = _to_category_policy(row) if row is not None else DEFAULT_POLICIES[category]
        self._cache[category] = policy
        return policy

    async def list_policies(self) -> list[CategoryPolicy]:
        """Effective policy for every category."""
        return [await self.get(category) for category in LeaveCategory]

    async def carry_forward_categories(self) -> list[CategoryPolicy]:
        return [p for p in await self.list_policies() if p.carry_forward_enabled]

    async def upsert(
        self,
        category: str | LeaveCategory,
        payload: PolicyUpdate,
        actor_id: uuid.UUID | None = None,
    ) -> CategoryPolicy:
        """Create or replace the tenant's policy for ``category``."""
        category = parse_category(category)
        row = await self._get_row(category)
        before = model_to_audit_dict(row) if row is not None else None

        if row is None:
            row = LeaveCategoryPolicy(tenant_id=self._tenant_id, leave_category=category.value, **payload.model_dump())
            self._session.add(row)
            action = AuditAction.CREATE
        else:
            for key, value in payload.model_dump().items():
                setattr(row, key, value)
            row.updated_at = datetime.now(UTC)
            action = AuditAction.UPDATE

        await self._session.flush()
        await write_audit_log(
            self._session,
            tenant_id=self._tenant_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.POLICY,
            entity_id=row.id,
            action=action,
            before_json=before,
            after_json=model_to_audit_dict(row),
        )
        await self._session.commit()

        policy = _to_category_policy(row)
        self._cache[category] = policy
        return policy
