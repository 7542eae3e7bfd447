# ruff: noqa: TC003
from __future__ import annotations

import datetime as dt
import uuid

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TenantScoped, TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.enums import AttendanceStatus


class AttendanceRecord(UUIDBase, TenantScoped, TimestampMixin, UpdatedAtMixin, table=True):
    """One attendance row per employee per calendar day.

    Rows with clock data are owned by the clock-in/out service; leave sync may
    only annotate them.
    """

    __tablename__ = "attendance_record"
    __table_args__ = (
        sa.UniqueConstraint("tenant_id", "employee_id", "date", name="uq_attendance_employee_day"),
    )

    employee_id: uuid.UUID = Field(index=True)
    date: dt.date
    status: str = Field(default=AttendanceStatus.ABSENT, max_length=20)
    clock_in: dt.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    clock_out: dt.datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    leave_id: uuid.UUID | None = Field(default=None, index=True)
    leave_category: str | None = Field(default=None, max_length=50)
    notes: str | None = None

    @property
    def has_clock_data(self) -> bool:
        return self.clock_in is not None or self.clock_out is not None
