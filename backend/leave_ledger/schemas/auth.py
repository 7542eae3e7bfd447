# ruff: noqa: TC003
from __future__ import annotations

import enum
import uuid

from pydantic import BaseModel


class Role(enum.StrEnum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class AuthContext(BaseModel):
    """Caller identity taken from the X-Tenant-Id, X-User-Id and X-Role headers."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    role: Role = Role.EMPLOYEE

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_act_for(self, employee_id: uuid.UUID) -> bool:
        """Admins act for anyone; employees only for themselves."""
        return self.is_admin or self.user_id == employee_id
