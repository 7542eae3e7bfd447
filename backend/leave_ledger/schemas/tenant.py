# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class TenantCreate(BaseModel):
    """Request body for registering a tenant."""

    name: str = Field(min_length=1, max_length=255)
    id: uuid.UUID | None = None


class TenantResponse(BaseModel):
    id: uuid.UUID
    name: str
    is_active: bool
    created_at: datetime
