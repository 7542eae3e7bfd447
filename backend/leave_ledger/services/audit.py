from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import col

from leave_ledger.models.audit import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlmodel import SQLModel

    from leave_ledger.models.enums import AuditAction, AuditEntityType

SYSTEM_ACTOR = uuid.UUID(int=0)


def model_to_audit_dict(model: SQLModel) -> dict[str, Any]:
    """Serialize a SQLModel instance to a JSON-safe dict for audit logging."""
    data: dict[str, Any] = {}
    for key, value in model.model_dump().items():
        if isinstance(value, uuid.UUID):
            data[key] = str(value)
        elif isinstance(value, (datetime, date)):
            data[key] = value.isoformat()
        elif isinstance(value, Decimal):
            data[key] = str(value)
        else:
            data[key] = value
    return data


def _employee_of(*payloads: dict[str, Any] | None) -> uuid.UUID | None:
    for payload in payloads:
        if payload and payload.get("employee_id"):
            return uuid.UUID(str(payload["employee_id"]))
    return None


async def write_audit_log(
    session: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    entity_type: AuditEntityType,
    entity_id: uuid.UUID,
    action: AuditAction,
    before_json: dict[str, Any] | None = None,
    after_json: dict[str, Any] | None = None,
    employee_id: uuid.UUID | None = None,
) -> AuditLog:
    """Write an immutable audit log entry within the caller's transaction.

    ``employee_id`` defaults to the one found in the audited payloads, so
    leave, ledger and attendance rows of one employee share a trail.
    """
    entry = AuditLog(
        tenant_id=tenant_id,
        actor_id=actor_id or SYSTEM_ACTOR,
        employee_id=employee_id or _employee_of(after_json, before_json),
        entity_type=entity_type.value,
        entity_id=entity_id,
        action=action.value,
        before_json=before_json,
        after_json=after_json,
    )
    session.add(entry)
    return entry


async def employee_trail(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID,
    entity_type: AuditEntityType | None = None,
) -> list[AuditLog]:
    """Audit entries touching one employee, oldest first."""
    query = select(AuditLog).where(
        col(AuditLog.tenant_id) == tenant_id,
        col(AuditLog.employee_id) == employee_id,
    )
    if entity_type is not None:
        query = query.where(col(AuditLog.entity_type) == entity_type.value)
    result = await session.execute(query.order_by(col(AuditLog.created_at)))
    return list(result.scalars().all())
