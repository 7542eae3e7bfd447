# ruff: noqa: TC001
from __future__ import annotations

from decimal import Decimal
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_ledger.models.enums import LeaveCategory


class CategoryPolicy(BaseModel):
    """Effective allocation and carry-forward rules for one leave category."""

    model_config = ConfigDict(frozen=True)

    leave_category: LeaveCategory
    annual_allocation: Decimal
    carry_forward_enabled: bool
    max_carryable_days: Decimal
    validity_months: int
    minimum_eligible_balance: Decimal
    is_default: bool = False


class PolicyUpdate(BaseModel):
    """Request body for configuring a category policy."""

    annual_allocation: Decimal = Field(ge=0, max_digits=6, decimal_places=1)
    carry_forward_enabled: bool = False
    max_carryable_days: Decimal = Field(default=Decimal(0), ge=0, max_digits=6, decimal_places=1)
    validity_months: int = Field(default=0, ge=0, le=120)
    minimum_eligible_balance: Decimal = Field(default=Decimal(0), ge=0, max_digits=6, decimal_places=1)

    @model_validator(mode="after")
    def _validate_carry_forward(self) -> Self:
        if self.carry_forward_enabled and self.max_carryable_days <= 0:
            msg = "max_carryable_days must be positive when carry forward is enabled"
            raise ValueError(msg)
        if self.carry_forward_enabled and self.validity_months <= 0:
            msg = "validity_months must be positive when carry forward is enabled"
            raise ValueError(msg)
        return self


class PolicyListResponse(BaseModel):
    items: list[CategoryPolicy]
    total: int
