# ruff: noqa: TC001, TC003
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from leave_ledger.models.enums import AttendanceStatus, LeaveCategory


class AttendanceResponse(BaseModel):
    """One attendance record."""

    id: uuid.UUID
    employee_id: uuid.UUID
    date: dt.date
    status: AttendanceStatus
    clock_in: dt.datetime | None
    clock_out: dt.datetime | None
    leave_id: uuid.UUID | None
    leave_category: LeaveCategory | None
    notes: str | None


class AttendanceListResponse(BaseModel):
    items: list[AttendanceResponse]
    total: int


class ClockEventPayload(BaseModel):
    """Request body for a clock-in/clock-out event."""

    employee_id: uuid.UUID
    date: dt.date
    clock_in: dt.datetime | None = None
    clock_out: dt.datetime | None = None

    @model_validator(mode="after")
    def _validate_clock(self) -> Self:
        if self.clock_in is None and self.clock_out is None:
            msg = "clock_in or clock_out is required"
            raise ValueError(msg)
        if self.clock_in is not None and self.clock_out is not None and self.clock_out < self.clock_in:
            msg = "clock_out must not be before clock_in"
            raise ValueError(msg)
        return self


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------


class SyncResult(BaseModel):
    """Per-day counts for one leave's attendance sync.

    ``errors`` holds ``{date, error}`` for days that failed; the remaining
    days are still processed.
    """

    created: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.errors)


class BackfillReport(BaseModel):
    """Outcome of re-syncing every approved leave of a tenant."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = Field(default_factory=list)
    cancelled: bool = False
    dry_run: bool = False
