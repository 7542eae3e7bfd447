# ruff: noqa: TC001, TC003
from __future__ import annotations

from fastapi import APIRouter, Depends

from leave_ledger.api.deps import AdminDep, TenantDep, validate_tenant_scope
from leave_ledger.models.enums import LeaveCategory
from leave_ledger.schemas.policy import CategoryPolicy, PolicyListResponse, PolicyUpdate

router = APIRouter(
    prefix="/tenants/{tenant_id}/policies",
    tags=["policies"],
    dependencies=[Depends(validate_tenant_scope)],
)


@router.get("", response_model=PolicyListResponse)
async def list_policies(ctx: TenantDep) -> PolicyListResponse:
    """Effective policy for every leave category, defaults included."""
    items = await ctx.policies.list_policies()
    return PolicyListResponse(items=items, total=len(items))


@router.get("/{leave_category}", response_model=CategoryPolicy)
async def get_policy(leave_category: LeaveCategory, ctx: TenantDep) -> CategoryPolicy:
    return await ctx.policies.get(leave_category)


@router.put("/{leave_category}", response_model=CategoryPolicy)
async def upsert_policy(
    leave_category: LeaveCategory,
    payload: PolicyUpdate,
    ctx: TenantDep,
    auth: AdminDep,
) -> CategoryPolicy:
    """Configure allocation and carry-forward rules for a category (admin only)."""
    return await ctx.policies.upsert(leave_category, payload, auth.user_id)
