# ruff: noqa: B008, TC002, TC003
from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.db import get_session
from leave_ledger.exceptions import AppError
from leave_ledger.schemas.auth import AuthContext, Role
from leave_ledger.services.tenant import TenantContext, TenantResolver, get_tenant_resolver


async def get_auth_context(
    x_tenant_id: uuid.UUID = Header(),
    x_user_id: uuid.UUID = Header(),
    x_role: Role = Header(default=Role.EMPLOYEE),
) -> AuthContext:
    """Build the caller identity from request headers. Unknown roles fail with 422."""
    return AuthContext(tenant_id=x_tenant_id, user_id=x_user_id, role=x_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_admin(
    auth: AuthDep,
) -> AuthContext:
    """Require admin role for the request."""
    if not auth.is_admin:
        raise AppError("Admin access required", status_code=status.HTTP_403_FORBIDDEN)
    return auth


AdminDep = Annotated[AuthContext, Depends(require_admin)]


async def validate_tenant_scope(
    tenant_id: uuid.UUID = Path(),
    auth: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Ensure the path tenant_id matches the auth header tenant_id."""
    if tenant_id != auth.tenant_id:
        raise AppError("Tenant ID mismatch", status_code=status.HTTP_403_FORBIDDEN)
    return auth


async def get_tenant_context(
    tenant_id: uuid.UUID = Path(),
    session: AsyncSession = Depends(get_session),
    resolver: TenantResolver = Depends(get_tenant_resolver),
) -> TenantContext:
    """Resolve the path tenant into its bound stores. Raises TenantNotFound."""
    return await resolver.resolve(session, tenant_id)


TenantDep = Annotated[TenantContext, Depends(get_tenant_context)]
