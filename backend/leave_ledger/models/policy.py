from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TenantScoped, TimestampMixin, UpdatedAtMixin, UUIDBase


class LeaveCategoryPolicy(UUIDBase, TenantScoped, TimestampMixin, UpdatedAtMixin, table=True):
    """Per-tenant allocation and carry-forward rules for one leave category."""

    __tablename__ = "leave_category_policy"
    __table_args__ = (sa.UniqueConstraint("tenant_id", "leave_category", name="uq_policy_tenant_category"),)

    leave_category: str = Field(max_length=50)
    annual_allocation: Decimal = Field(max_digits=6, decimal_places=1)
    carry_forward_enabled: bool = False
    max_carryable_days: Decimal = Field(default=Decimal(0), max_digits=6, decimal_places=1)
    validity_months: int = 0
    minimum_eligible_balance: Decimal = Field(default=Decimal(0), max_digits=6, decimal_places=1)
