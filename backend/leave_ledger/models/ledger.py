# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TenantScoped, TimestampMixin, UUIDBase, _now_utc


class LeaveLedgerEntry(UUIDBase, TenantScoped, TimestampMixin, table=True):
    """Append-only ledger entry that records every balance-affecting event.

    ``balance_after == balance_before + amount`` holds for every row. Rows are
    never updated apart from the one-way ``is_deleted`` retraction flag.
    """

    __tablename__ = "leave_ledger_entry"
    __table_args__ = (
        sa.Index("ix_ledger_employee_category", "tenant_id", "employee_id", "leave_category"),
        sa.UniqueConstraint(
            "tenant_id", "employee_id", "leave_category", "sequence", name="uq_ledger_key_sequence"
        ),
    )

    employee_id: uuid.UUID = Field(index=True)
    leave_category: str = Field(max_length=50)
    transaction_type: str = Field(max_length=50)
    sequence: int
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    balance_before: Decimal = Field(max_digits=10, decimal_places=2)
    balance_after: Decimal = Field(max_digits=10, decimal_places=2)
    related_leave_request_id: uuid.UUID | None = Field(default=None, index=True)
    occurred_at: datetime = Field(
        default_factory=_now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
    )
    fiscal_year: str = Field(max_length=20, index=True)
    description: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    recorded_by: uuid.UUID | None = None
    is_deleted: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
