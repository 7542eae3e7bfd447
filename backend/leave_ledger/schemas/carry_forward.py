# ruff: noqa: TC001, TC003
from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from leave_ledger.models.enums import LeaveCategory
from leave_ledger.schemas.ledger import LedgerEntryResponse


class CarryForwardStatus(enum.StrEnum):
    EXECUTED = "executed"
    ALREADY_PROCESSED = "already_processed"
    NOT_ELIGIBLE = "not_eligible"


class CarryForwardPreview(BaseModel):
    """Computed carry-forward for one category, before anything is written."""

    leave_category: LeaveCategory
    from_balance: Decimal
    carry_forward_amount: Decimal
    max_allowed: Decimal
    validity_months: int
    expiry_date: date
    fiscal_year: str


class CarryForwardPreviewResponse(BaseModel):
    employee_id: uuid.UUID
    fiscal_year_from: int
    items: list[CarryForwardPreview]


class CarryForwardResult(BaseModel):
    """Outcome of carrying one category forward."""

    leave_category: LeaveCategory
    status: CarryForwardStatus
    amount: Decimal = Decimal(0)
    ledger_entry_id: uuid.UUID | None = None
    opening_entry_id: uuid.UUID | None = None
    new_balance: Decimal | None = None


class EmployeeCarryForwardResult(BaseModel):
    employee_id: uuid.UUID
    results: list[CarryForwardResult] = Field(default_factory=list)
    error: str | None = None


class TenantCarryForwardReport(BaseModel):
    """Outcome of a tenant-wide carry-forward run."""

    fiscal_year_from: int
    total_employees: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[EmployeeCarryForwardResult] = Field(default_factory=list)
    cancelled: bool = False


class CarryForwardHistoryResponse(BaseModel):
    employee_id: uuid.UUID
    items: list[LedgerEntryResponse]


class CarryForwardSummaryItem(BaseModel):
    leave_category: LeaveCategory
    employees: int
    total_days: Decimal
    average_days: Decimal


class CarryForwardSummaryResponse(BaseModel):
    fiscal_year: str
    items: list[CarryForwardSummaryItem]


class ExpiryReport(BaseModel):
    """Outcome of expiring carried balances past their validity window."""

    as_of: date
    expired_entries: int = 0
    total_days: Decimal = Decimal(0)
    errors: list[dict[str, str]] = Field(default_factory=list)
