from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fastapi import FastAPI, Request, Response

    from leave_ledger.config import Settings

logger = logging.getLogger("leave_ledger.requests")


async def log_requests(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Log method, path, tenant, status and duration of every request."""
    started = time.perf_counter()
    tenant = request.headers.get("x-tenant-id", "-")
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.exception("%s %s tenant=%s failed after %.1fms", request.method, request.url.path, tenant, elapsed_ms)
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s tenant=%s status=%d %.1fms",
        request.method,
        request.url.path,
        tenant,
        response.status_code,
        elapsed_ms,
    )
    return response


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware."""
    app.middleware("http")(log_requests)
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
