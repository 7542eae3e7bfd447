# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import LeaveCategory, LeaveStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class SubmitLeavePayload(BaseModel):
    """Request body for submitting a new leave request."""

    employee_id: uuid.UUID
    leave_category: LeaveCategory
    start_date: date
    end_date: date
    is_half_day: bool = False
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        if self.is_half_day and self.end_date != self.start_date:
            msg = "A half-day leave must start and end on the same day"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Request body for approve/reject/cancel actions."""

    note: str | None = Field(default=None, max_length=1000)


class ModifyDatesPayload(BaseModel):
    """Request body for moving an approved leave to new dates."""

    start_date: date
    end_date: date
    is_half_day: bool | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> Self:
        if self.end_date < self.start_date:
            msg = "end_date must not be before start_date"
            raise ValueError(msg)
        return self


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class LeaveResponse(BaseModel):
    """Response schema for a single leave request."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    employee_id: uuid.UUID
    leave_category: LeaveCategory
    start_date: date
    end_date: date
    is_half_day: bool
    number_of_days: Decimal
    reason: str | None
    status: LeaveStatus
    approved_by: uuid.UUID | None
    decided_at: datetime | None
    decision_note: str | None
    created_at: datetime
    updated_at: datetime


class LeaveListResponse(BaseModel):
    """Paginated list of leave requests."""

    items: list[LeaveResponse]
    total: int


class SideEffectReport(BaseModel):
    """Outcome of one best-effort side effect of a leave transition."""

    name: str
    succeeded: bool
    skipped: bool = False
    error: str | None = None
    detail: dict[str, Any] | None = None


class LeaveActionResponse(BaseModel):
    """A leave after a workflow transition, with the outcome of its side effects."""

    leave: LeaveResponse
    side_effects: list[SideEffectReport] = Field(default_factory=list)
