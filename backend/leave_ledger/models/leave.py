# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TenantScoped, TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.enums import LeaveStatus


class LeaveRequest(UUIDBase, TenantScoped, TimestampMixin, UpdatedAtMixin, table=True):
    """An employee's leave request with approval workflow state."""

    __tablename__ = "leave_request"
    __table_args__ = (
        sa.Index("ix_leave_tenant_status", "tenant_id", "status"),
        sa.Index("ix_leave_employee_dates", "tenant_id", "employee_id", "start_date", "end_date"),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_category: str = Field(max_length=50)
    start_date: date
    end_date: date
    is_half_day: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    number_of_days: Decimal = Field(max_digits=6, decimal_places=1)
    reason: str | None = None
    status: str = Field(
        default=LeaveStatus.PENDING, max_length=50, index=True, sa_column_kwargs={"server_default": "pending"}
    )
    approved_by: uuid.UUID | None = None
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decision_note: str | None = None
