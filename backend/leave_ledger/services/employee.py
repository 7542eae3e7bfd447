# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class EmployeeInfo(BaseModel):
    """Employee metadata from the Employee Service."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    first_name: str
    last_name: str
    email: str | None = None
    is_active: bool = True
    employment_status: str = "Active"  # "Active", "Resigned", "Terminated", ...

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@runtime_checkable
class EmployeeService(Protocol):
    """Interface for the Employee Service."""

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        ...

    async def list_active_employees(self, tenant_id: uuid.UUID) -> list[EmployeeInfo]:
        """List employees of a tenant that are active and currently employed."""
        ...


class InMemoryEmployeeService:
    """In-memory stub implementation for development."""

    def __init__(self) -> None:
        self._employees: dict[tuple[uuid.UUID, uuid.UUID], EmployeeInfo] = {}

    def seed(self, employee: EmployeeInfo) -> None:
        """Seed an employee for testing."""
        self._employees[(employee.tenant_id, employee.id)] = employee

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> EmployeeInfo | None:
        """Fetch employee metadata. Returns None if not found."""
        return self._employees.get((tenant_id, employee_id))

    async def list_active_employees(self, tenant_id: uuid.UUID) -> list[EmployeeInfo]:
        """List employees of a tenant that are active and currently employed."""
        return [
            e
            for e in self._employees.values()
            if e.tenant_id == tenant_id and e.is_active and e.employment_status == "Active"
        ]


_employee_service: EmployeeService = InMemoryEmployeeService()


def get_employee_service() -> EmployeeService:
    """FastAPI dependency for the Employee Service."""
    return _employee_service


def set_employee_service(service: EmployeeService) -> None:
    """Override the service (for testing or production wiring)."""
    global _employee_service
    _employee_service = service
