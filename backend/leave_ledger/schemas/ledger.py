# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

from leave_ledger.models.enums import LeaveCategory, TransactionType

# ---------------------------------------------------------------------------
# Ledger response schemas
# ---------------------------------------------------------------------------


class LedgerEntryResponse(BaseModel):
    """A single ledger entry."""

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_category: LeaveCategory
    transaction_type: TransactionType
    sequence: int
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    related_leave_request_id: uuid.UUID | None
    occurred_at: datetime
    fiscal_year: str
    description: str | None
    details: dict[str, Any] | None
    recorded_by: uuid.UUID | None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Paginated ledger entries, newest first."""

    items: list[LedgerEntryResponse]
    total: int


# ---------------------------------------------------------------------------
# Balance summary schemas
# ---------------------------------------------------------------------------


class BalanceSummaryItem(BaseModel):
    """Balance of one leave category for the reporting fiscal year."""

    leave_category: LeaveCategory
    total: Decimal
    used: Decimal
    balance: Decimal
    last_transaction_at: datetime | None


class BalanceSummaryResponse(BaseModel):
    employee_id: uuid.UUID
    fiscal_year: str
    items: list[BalanceSummaryItem]


# ---------------------------------------------------------------------------
# Admin write schemas
# ---------------------------------------------------------------------------


class ManualTransactionRequest(BaseModel):
    """Request body for an admin-posted ledger transaction."""

    employee_id: uuid.UUID
    leave_category: LeaveCategory
    transaction_type: Literal["allocated", "adjustment", "encashed", "expired"]
    amount: Decimal = Field(
        max_digits=10,
        decimal_places=2,
        description="Signed amount in days: positive credits, negative debits",
    )
    description: str | None = Field(default=None, max_length=1000)
    details: dict[str, Any] | None = None


class RetractEntryRequest(BaseModel):
    """Request body for retracting an erroneous ledger entry."""

    reason: str = Field(min_length=1, max_length=1000)
