# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query

from leave_ledger.api.deps import AdminDep, AuthDep, TenantDep, validate_tenant_scope
from leave_ledger.exceptions import ValidationError
from leave_ledger.schemas.attendance import (
    AttendanceListResponse,
    AttendanceResponse,
    BackfillReport,
    ClockEventPayload,
)
from leave_ledger.services.attendance import build_attendance_response
from leave_ledger.services.attendance_sync import sync_approved_leaves_to_attendance

attendance_router = APIRouter(
    prefix="/tenants/{tenant_id}/attendance",
    tags=["attendance"],
    dependencies=[Depends(validate_tenant_scope)],
)


@attendance_router.get("", response_model=AttendanceListResponse)
async def list_attendance(
    ctx: TenantDep,
    employee_id: uuid.UUID = Query(),
    start_date: date = Query(),
    end_date: date = Query(),
) -> AttendanceListResponse:
    """Attendance records of an employee within a date range."""
    if end_date < start_date:
        msg = "end_date must not be before start_date"
        raise ValidationError(msg)
    return await ctx.attendance.list_for_employee(employee_id, start_date, end_date)


@attendance_router.post("/clock", response_model=AttendanceResponse)
async def record_clock_event(
    payload: ClockEventPayload,
    ctx: TenantDep,
    auth: AuthDep,
) -> AttendanceResponse:
    """Record a clock-in/clock-out event for a day."""
    record = await ctx.attendance.record_clock_event(
        payload.employee_id,
        payload.date,
        clock_in=payload.clock_in,
        clock_out=payload.clock_out,
        actor_id=auth.user_id,
    )
    return build_attendance_response(record)


@attendance_router.post("/backfill", response_model=BackfillReport)
async def backfill_attendance(
    ctx: TenantDep,
    auth: AdminDep,
    employee_id: uuid.UUID | None = Query(default=None),
    dry_run: bool = Query(default=False),
) -> BackfillReport:
    """Re-sync attendance for every approved leave (admin only)."""
    return await sync_approved_leaves_to_attendance(ctx, employee_id, dry_run=dry_run, actor_id=auth.user_id)
