# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query

from leave_ledger.api.deps import AdminDep, TenantDep, validate_tenant_scope
from leave_ledger.schemas.carry_forward import (
    CarryForwardHistoryResponse,
    CarryForwardPreviewResponse,
    CarryForwardResult,
    CarryForwardSummaryResponse,
    ExpiryReport,
    TenantCarryForwardReport,
)
from leave_ledger.services import carry_forward as carry_forward_service
from leave_ledger.services.ledger import build_ledger_entry_response

carry_forward_router = APIRouter(
    prefix="/tenants/{tenant_id}/carry-forward",
    tags=["carry-forward"],
    dependencies=[Depends(validate_tenant_scope)],
)


@carry_forward_router.get("/summary", response_model=CarryForwardSummaryResponse)
async def get_summary(
    ctx: TenantDep,
    fiscal_year: str = Query(max_length=20, description="Closing fiscal-year label, e.g. FY2025-2026"),
) -> CarryForwardSummaryResponse:
    """Per-category totals carried out of a fiscal year."""
    return await carry_forward_service.summary(ctx, fiscal_year)


@carry_forward_router.post("/execute", response_model=TenantCarryForwardReport)
async def execute_for_tenant(
    ctx: TenantDep,
    auth: AdminDep,
    fiscal_year_from: int = Query(ge=1900, le=9999),
) -> TenantCarryForwardReport:
    """Carry forward every active employee of the tenant (admin only)."""
    return await carry_forward_service.execute_for_tenant(ctx, fiscal_year_from, auth.user_id)


@carry_forward_router.post("/expire", response_model=ExpiryReport)
async def expire_carried_balances(
    ctx: TenantDep,
    auth: AdminDep,
    as_of: date | None = Query(default=None),
) -> ExpiryReport:
    """Expire carried balances whose validity window has passed (admin only)."""
    return await carry_forward_service.expire_carried_balances(ctx, as_of, auth.user_id)


@carry_forward_router.get("/{employee_id}/preview", response_model=CarryForwardPreviewResponse)
async def preview(
    employee_id: uuid.UUID,
    ctx: TenantDep,
    fiscal_year_from: int = Query(ge=1900, le=9999),
) -> CarryForwardPreviewResponse:
    """Preview an employee's carry-forward without writing anything."""
    items = await carry_forward_service.calculate(ctx, employee_id, fiscal_year_from)
    return CarryForwardPreviewResponse(employee_id=employee_id, fiscal_year_from=fiscal_year_from, items=items)


@carry_forward_router.post("/{employee_id}/execute", response_model=list[CarryForwardResult])
async def execute(
    employee_id: uuid.UUID,
    ctx: TenantDep,
    auth: AdminDep,
    fiscal_year_from: int = Query(ge=1900, le=9999),
) -> list[CarryForwardResult]:
    """Carry forward one employee's eligible balances (admin only)."""
    return await carry_forward_service.execute(ctx, employee_id, fiscal_year_from, auth.user_id)


@carry_forward_router.get("/{employee_id}/history", response_model=CarryForwardHistoryResponse)
async def get_history(
    employee_id: uuid.UUID,
    ctx: TenantDep,
) -> CarryForwardHistoryResponse:
    """Carry-forward entries of an employee, newest first."""
    entries = await carry_forward_service.history(ctx, employee_id)
    return CarryForwardHistoryResponse(
        employee_id=employee_id,
        items=[build_ledger_entry_response(e) for e in entries],
    )
