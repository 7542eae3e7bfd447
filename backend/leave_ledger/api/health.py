import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from leave_ledger.config import get_settings
from leave_ledger.db import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service liveness plus ledger database reachability."""

    status: Literal["ok", "degraded"]
    service: str
    version: str
    environment: str
    database: Literal["ok", "unreachable"]
    fiscal_year_start_month: int


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    settings = get_settings()
    database: Literal["ok", "unreachable"] = "ok"

    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: ledger database unreachable")
        database = "unreachable"

    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        database=database,
        fiscal_year_start_month=settings.fiscal_year_start_month,
    )
