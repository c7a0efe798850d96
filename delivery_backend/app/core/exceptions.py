"""
Custom exceptions and error handlers for consistent error responses.

Every domain failure maps to one exception class with a stable error code,
so clients can branch on ``error_code`` instead of parsing messages.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger("delivery.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(AppException):
    """Raised when no usable identity assertion was presented."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class IdentityVerificationError(AppException):
    """Raised when an identity assertion is present but fails verification."""

    def __init__(self, message: str = "Identity assertion could not be verified"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_002",
            status_code=status.HTTP_403_FORBIDDEN
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None, details: Dict[str, Any] = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        payload = {"resource": resource, "id": resource_id}
        payload.update(details or {})
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details=payload
        )


class InvalidArgumentError(AppException):
    """Raised for disallowed enum values and malformed inputs."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ARG_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidOperationError(AppException):
    """Raised when a well-formed request is refused by a safety rule."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_OP_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidStateError(AppException):
    """Raised when an operation is not permitted from the entity's current state."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidTransitionError(AppException):
    """Raised when a requested status is not the single allowed successor."""

    def __init__(self, current: str, requested: str, expected: Optional[str]):
        if expected:
            message = f"Invalid transition from '{current}' to '{requested}', expected '{expected}'"
        else:
            message = f"No status transition is allowed from '{current}'"
        super().__init__(
            message=message,
            error_code="ERR_STATE_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"current": current, "requested": requested, "expected": expected}
        )


class ConflictError(AppException):
    """Raised on uniqueness violations and duplicate submissions."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class AlreadyProcessedError(AppException):
    """Raised when a guarded update matched nothing because the entity moved on."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_002",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class PaymentNotSucceededError(AppException):
    """Raised when the gateway reports a non-terminal or failed payment."""

    def __init__(self, observed_status: str):
        super().__init__(
            message="Payment not succeeded",
            error_code="ERR_PAY_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"status": observed_status}
        )


class AmountMismatchError(AppException):
    """Raised when the captured amount differs from the parcel's expected amount."""

    def __init__(self, expected: int, got: int):
        super().__init__(
            message="Amount mismatch",
            error_code="ERR_PAY_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"expected": expected, "got": got}
        )


class PaymentGatewayError(AppException):
    """Raised when the payment gateway cannot be reached or answers with an error."""

    def __init__(self, message: str = "Payment gateway unavailable"):
        super().__init__(
            message=message,
            error_code="ERR_PAY_003",
            status_code=status.HTTP_502_BAD_GATEWAY
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_AUTH_001",
        403: "ERR_PERM_001",
        404: "ERR_NOT_FOUND_001",
        405: "ERR_METHOD_NOT_ALLOWED",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that JSONResponse cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
