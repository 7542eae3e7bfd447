# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, TenantDep, validate_tenant_scope
from leave_ledger.models.enums import LeaveCategory, TransactionType
from leave_ledger.schemas.ledger import (
    BalanceSummaryResponse,
    LedgerEntryResponse,
    LedgerListResponse,
    ManualTransactionRequest,
    RetractEntryRequest,
)
from leave_ledger.services.ledger import build_ledger_entry_response

employee_balance_router = APIRouter(
    prefix="/tenants/{tenant_id}/employees/{employee_id}/balances",
    tags=["balances"],
    dependencies=[Depends(validate_tenant_scope)],
)

employee_ledger_router = APIRouter(
    prefix="/tenants/{tenant_id}/employees/{employee_id}/ledger",
    tags=["balances"],
    dependencies=[Depends(validate_tenant_scope)],
)

ledger_router = APIRouter(
    prefix="/tenants/{tenant_id}/ledger",
    tags=["balances"],
    dependencies=[Depends(validate_tenant_scope)],
)


@employee_balance_router.get("", response_model=BalanceSummaryResponse)
async def get_employee_balances(
    employee_id: uuid.UUID,
    ctx: TenantDep,
    fiscal_year: str | None = Query(default=None, max_length=20),
) -> BalanceSummaryResponse:
    """Per-category balance summary for an employee."""
    return await ctx.ledger.balance_summary(employee_id, fiscal_year)


@employee_ledger_router.get("", response_model=LedgerListResponse)
async def get_employee_ledger(
    employee_id: uuid.UUID,
    ctx: TenantDep,
    leave_category: LeaveCategory | None = Query(default=None),
    fiscal_year: str | None = Query(default=None, max_length=20),
    transaction_type: TransactionType | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LedgerListResponse:
    """Paginated ledger entries for an employee, newest first."""
    entries = await ctx.ledger.history(employee_id, leave_category, fiscal_year, transaction_type, offset, limit)
    total = await ctx.ledger.count_history(employee_id, leave_category, fiscal_year, transaction_type)
    return LedgerListResponse(items=[build_ledger_entry_response(e) for e in entries], total=total)


@ledger_router.post("/transactions", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def post_transaction(
    payload: ManualTransactionRequest,
    ctx: TenantDep,
    auth: AdminDep,
) -> LedgerEntryResponse:
    """Post a manual ledger transaction (admin only)."""
    entry = await ctx.ledger.append_transaction(
        payload.employee_id,
        payload.leave_category,
        payload.transaction_type,
        payload.amount,
        details=payload.details,
        description=payload.description,
        recorded_by=auth.user_id,
    )
    return build_ledger_entry_response(entry)


@ledger_router.post("/{entry_id}/retract", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def retract_entry(
    entry_id: uuid.UUID,
    payload: RetractEntryRequest,
    ctx: TenantDep,
    auth: AdminDep,
) -> LedgerEntryResponse:
    """Retract the latest entry of a balance; returns the correcting entry (admin only)."""
    entry = await ctx.ledger.retract_entry(entry_id, payload.reason, auth.user_id)
    return build_ledger_entry_response(entry)
