from sqlmodel import SQLModel

from leave_ledger.models.attendance import AttendanceRecord
from leave_ledger.models.audit import AuditLog
from leave_ledger.models.base import TenantScoped, TimestampMixin, UpdatedAtMixin, UUIDBase
from leave_ledger.models.enums import (
    AttendanceStatus,
    AuditAction,
    AuditEntityType,
    LeaveCategory,
    LeaveStatus,
    TransactionType,
)
from leave_ledger.models.leave import LeaveRequest
from leave_ledger.models.ledger import LeaveLedgerEntry
from leave_ledger.models.policy import LeaveCategoryPolicy
from leave_ledger.models.tenant import Tenant

__all__ = [
    "AttendanceRecord",
    "AttendanceStatus",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "LeaveCategory",
    "LeaveCategoryPolicy",
    "LeaveLedgerEntry",
    "LeaveRequest",
    "LeaveStatus",
    "SQLModel",
    "Tenant",
    "TenantScoped",
    "TimestampMixin",
    "TransactionType",
    "UUIDBase",
    "UpdatedAtMixin",
]
