# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TenantScoped, UUIDBase, _now_utc


class AuditLog(UUIDBase, TenantScoped, table=True):
    """Immutable record of every workflow transition and sync mutation."""

    __tablename__ = "audit_log"
    __table_args__ = (sa.Index("ix_audit_entity", "entity_type", "entity_id"),)

    actor_id: uuid.UUID
    employee_id: uuid.UUID | None = Field(default=None, index=True)
    entity_type: str = Field(max_length=50)
    entity_id: uuid.UUID
    action: str = Field(max_length=50)
    before_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    after_json: dict[str, Any] | None = Field(default=None, sa_type=sa.JSON)
    created_at: datetime = Field(
        default_factory=_now_utc,
        index=True,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
