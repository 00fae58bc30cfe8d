from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None, code: str = "CONFLICT"):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientBalanceError(AppError):
    """Raised before any paid work starts."""

    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Not enough credits. You need {required} credits.",
            code="INSUFFICIENT_CREDITS",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details={"balance": balance, "required": required},
        )


class WriteConflictError(ConflictError):
    """The record changed since the caller read it; re-fetch and retry."""

    def __init__(self, message: str = "Workout changed since it was loaded", details: dict[str, Any] | None = None):
        super().__init__(message, details=details, code="WRITE_CONFLICT")


class InvalidTransitionError(ConflictError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details, code="INVALID_TRANSITION")


class GatewayFailureError(AppError):
    def __init__(self, message: str = "Generation failed. Credits have been refunded. Please try again.", details: dict[str, Any] | None = None):
        super().__init__(message, code="GATEWAY_FAILURE", status_code=status.HTTP_502_BAD_GATEWAY, details=details)


class PartialBatchFailureError(AppError):
    """Some athlete writes in a batch failed; details list exactly which."""

    def __init__(self, batch_key: str, created: dict[str, str], failed: dict[str, str], assignments: list | None = None):
        self.batch_key = batch_key
        self.created = created  # athlete id -> assignment id
        self.failed = failed  # athlete id -> reason
        self.assignments = assignments or []
        super().__init__(
            f"{len(failed)} of {len(created) + len(failed)} assignments could not be created",
            code="PARTIAL_BATCH_FAILURE",
            status_code=status.HTTP_207_MULTI_STATUS,
            details={"batch_key": batch_key, "created": created, "failed": failed},
        )


class RateLimitedError(AppError):
    def __init__(self, retry_after_seconds: int):
        super().__init__(
            "Too many requests. Please slow down.",
            code="RATE_LIMITED",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"retry_after_seconds": retry_after_seconds},
        )


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.details["retry_after_seconds"])}
    return ORJSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
