# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status

from leave_ledger.api.deps import AdminDep, validate_tenant_scope
from leave_ledger.db import SessionDep
from leave_ledger.schemas.tenant import TenantCreate, TenantResponse
from leave_ledger.services import tenant as tenant_service

tenants_router = APIRouter(prefix="/tenants", tags=["tenants"])


def _to_response(tenant: object) -> TenantResponse:
    return TenantResponse.model_validate(tenant, from_attributes=True)


@tenants_router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    payload: TenantCreate,
    session: SessionDep,
    auth: AdminDep,
) -> TenantResponse:
    """Register a new tenant partition (admin only)."""
    tenant = await tenant_service.create_tenant(session, payload.name, auth.user_id, payload.id)
    return _to_response(tenant)


@tenants_router.get(
    "/{tenant_id}",
    response_model=TenantResponse,
    dependencies=[Depends(validate_tenant_scope)],
)
async def get_tenant(tenant_id: uuid.UUID, session: SessionDep) -> TenantResponse:
    return _to_response(await tenant_service.get_tenant(session, tenant_id))
