from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class TenantNotFound(AppError):
    """The tenant is unknown or inactive. Aborts the whole call."""

    def __init__(self, tenant_id: object) -> None:
        super().__init__(f"Tenant {tenant_id} not found", status_code=status.HTTP_404_NOT_FOUND)
        self.tenant_id = tenant_id


class NotFound(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND)


class Conflict(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class ValidationError(AppError):
    """Malformed input for a single operation (bad date range, unknown category, ...)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class ConcurrencyConflict(AppError):
    """A ledger append kept losing the race for its key after bounded retries.

    Safe to retry.
    """

    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(f"{message} (retryable)", status_code=status.HTTP_409_CONFLICT)


class DuplicateTransaction(AppError):
    """A carry-forward for the same key and fiscal year already exists.

    Callers treat this as a successful no-op.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_200_OK)


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
