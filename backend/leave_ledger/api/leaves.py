# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from leave_ledger.api.deps import AdminDep, AuthDep, TenantDep, validate_tenant_scope
from leave_ledger.exceptions import AppError
from leave_ledger.models.enums import LeaveCategory, LeaveStatus
from leave_ledger.schemas.attendance import AttendanceListResponse, SyncResult
from leave_ledger.schemas.leave import (
    DecisionPayload,
    LeaveActionResponse,
    LeaveListResponse,
    LeaveResponse,
    ModifyDatesPayload,
    SubmitLeavePayload,
)
from leave_ledger.services import leave as leave_service
from leave_ledger.services.attendance import build_attendance_response
from leave_ledger.services.attendance_sync import get_attendance_for_leave

leaves_router = APIRouter(
    prefix="/tenants/{tenant_id}/leaves",
    tags=["leaves"],
    dependencies=[Depends(validate_tenant_scope)],
)


@leaves_router.post("", response_model=LeaveResponse, status_code=status.HTTP_201_CREATED)
async def submit_leave(
    payload: SubmitLeavePayload,
    ctx: TenantDep,
    auth: AuthDep,
) -> LeaveResponse:
    """Submit a new leave request."""
    return await leave_service.submit_leave(ctx, payload, auth.user_id)


@leaves_router.get("", response_model=LeaveListResponse)
async def list_leaves(
    ctx: TenantDep,
    status_filter: LeaveStatus | None = Query(default=None, alias="status"),
    employee_id: uuid.UUID | None = Query(default=None),
    leave_category: LeaveCategory | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> LeaveListResponse:
    """List leave requests with optional filters."""
    return await ctx.leaves.list_leaves(
        status_filter.value if status_filter else None,
        employee_id,
        leave_category.value if leave_category else None,
        offset,
        limit,
    )


@leaves_router.get("/{leave_id}", response_model=LeaveResponse)
async def get_leave(
    leave_id: uuid.UUID,
    ctx: TenantDep,
) -> LeaveResponse:
    """Get a single leave request."""
    return leave_service.build_leave_response(await ctx.leaves.get(leave_id))


@leaves_router.post("/{leave_id}/approve", response_model=LeaveActionResponse)
async def approve_leave(
    leave_id: uuid.UUID,
    ctx: TenantDep,
    auth: AdminDep,
    payload: DecisionPayload | None = None,
) -> LeaveActionResponse:
    """Approve a pending leave (admin only)."""
    result = await leave_service.approve_leave(ctx, leave_id, auth.user_id, payload.note if payload else None)
    return result.to_response()


@leaves_router.post("/{leave_id}/reject", response_model=LeaveActionResponse)
async def reject_leave(
    leave_id: uuid.UUID,
    ctx: TenantDep,
    auth: AdminDep,
    payload: DecisionPayload | None = None,
) -> LeaveActionResponse:
    """Reject a pending leave (admin only)."""
    result = await leave_service.reject_leave(ctx, leave_id, auth.user_id, payload.note if payload else None)
    return result.to_response()


@leaves_router.post("/{leave_id}/cancel", response_model=LeaveActionResponse)
async def cancel_leave(
    leave_id: uuid.UUID,
    ctx: TenantDep,
    auth: AuthDep,
    payload: DecisionPayload | None = None,
) -> LeaveActionResponse:
    """Cancel a pending or approved leave.

    The employee who owns the leave or an admin can cancel.
    """
    leave = await ctx.leaves.get(leave_id)
    if not auth.can_act_for(leave.employee_id):
        raise AppError("Not authorized to cancel this leave", status_code=status.HTTP_403_FORBIDDEN)
    result = await leave_service.cancel_leave(ctx, leave_id, auth.user_id, payload.note if payload else None)
    return result.to_response()


@leaves_router.patch("/{leave_id}/dates", response_model=LeaveActionResponse)
async def modify_leave_dates(
    leave_id: uuid.UUID,
    payload: ModifyDatesPayload,
    ctx: TenantDep,
    auth: AdminDep,
) -> LeaveActionResponse:
    """Move an approved leave to new dates (admin only)."""
    result = await leave_service.modify_leave_dates(
        ctx,
        leave_id,
        payload.start_date,
        payload.end_date,
        is_half_day=payload.is_half_day,
        actor_id=auth.user_id,
    )
    return result.to_response()


@leaves_router.get("/{leave_id}/attendance", response_model=AttendanceListResponse)
async def get_leave_attendance(
    leave_id: uuid.UUID,
    ctx: TenantDep,
) -> AttendanceListResponse:
    """Attendance records currently attributed to a leave."""
    records = await get_attendance_for_leave(ctx, leave_id)
    return AttendanceListResponse(items=[build_attendance_response(r) for r in records], total=len(records))


@leaves_router.post("/{leave_id}/attendance/sync", response_model=SyncResult)
async def sync_leave_attendance(
    leave_id: uuid.UUID,
    ctx: TenantDep,
    auth: AdminDep,
) -> SyncResult:
    """Re-sync attendance for one approved leave (admin only)."""
    return await leave_service.resync_leave_attendance(ctx, leave_id, auth.user_id)
