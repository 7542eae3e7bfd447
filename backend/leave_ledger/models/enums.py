from __future__ import annotations

import enum


class LeaveCategory(enum.StrEnum):
    """Kind of leave a balance is kept for."""

    CASUAL = "casual"
    SICK = "sick"
    EARNED = "earned"
    COMPENSATORY = "compensatory"
    MATERNITY = "maternity"
    PATERNITY = "paternity"
    BEREAVEMENT = "bereavement"
    UNPAID = "unpaid"
    SPECIAL = "special"


class TransactionType(enum.StrEnum):
    """Type of ledger entry affecting balance."""

    OPENING = "opening"
    ALLOCATED = "allocated"
    USED = "used"
    RESTORED = "restored"
    CARRY_FORWARD = "carry_forward"
    ENCASHED = "encashed"
    ADJUSTMENT = "adjustment"
    EXPIRED = "expired"


class LeaveStatus(enum.StrEnum):
    """State machine for leave requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class AttendanceStatus(enum.StrEnum):
    """Daily attendance status."""

    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half-day"
    ON_LEAVE = "on-leave"
    HOLIDAY = "holiday"
    WEEKEND = "weekend"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    TENANT = "TENANT"
    LEAVE_REQUEST = "LEAVE_REQUEST"
    LEDGER_ENTRY = "LEDGER_ENTRY"
    ATTENDANCE = "ATTENDANCE"
    POLICY = "POLICY"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    MODIFY = "MODIFY"
    RETRACT = "RETRACT"
    SYNC = "SYNC"
