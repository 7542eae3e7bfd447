from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Field

from leave_ledger.models.base import TimestampMixin, UUIDBase


class Tenant(UUIDBase, TimestampMixin, table=True):
    """A company whose data lives in its own isolated partition."""

    __tablename__ = "tenant"

    name: str = Field(max_length=255)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
