"""Standardized error handling for the hackteam API."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware


class ErrorCode(StrEnum):
    """Standard error codes for API responses."""

    # Resource errors
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    PROBLEM_STATEMENT_NOT_FOUND = "PROBLEM_STATEMENT_NOT_FOUND"
    VOTE_NOT_FOUND = "VOTE_NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"

    # Conflict errors
    PROBLEM_STATEMENT_FULL = "PROBLEM_STATEMENT_FULL"
    TEAM_FULL = "TEAM_FULL"
    DUPLICATE_VOTE = "DUPLICATE_VOTE"
    DUPLICATE_TEAM_NAME = "DUPLICATE_TEAM_NAME"
    DUPLICATE_CUSTOM_STATEMENT = "DUPLICATE_CUSTOM_STATEMENT"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # State errors
    ALREADY_IN_TEAM = "ALREADY_IN_TEAM"
    NOT_A_TEAM_MEMBER = "NOT_A_TEAM_MEMBER"
    NOT_IN_TEAM = "NOT_IN_TEAM"
    SELF_VOTE = "SELF_VOTE"
    CANNOT_REMOVE_SELF = "CANNOT_REMOVE_SELF"
    INVALID_TRANSFER_TARGET = "INVALID_TRANSFER_TARGET"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Auth errors
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_TEAM_LEADER = "NOT_TEAM_LEADER"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"
    VOTING_CLOSED = "VOTING_CLOSED"
    RATE_LIMITED = "RATE_LIMITED"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


class APIError(Exception):
    """Base exception for API errors with structured responses."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=404, details=details)


class ConflictError(APIError):
    """Capacity exceeded, duplicate write, or concurrent modification."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=409, details=details)


class StateError(APIError):
    """Operation not allowed in the caller's current membership state."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=400, details=details)


class UnauthorizedError(APIError):
    """Unauthorized error."""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=401, details=details)


class ForbiddenError(APIError):
    """Forbidden error (includes non-leader attempting a leader-only operation)."""

    def __init__(
        self,
        message: str = "Access denied",
        code: ErrorCode = ErrorCode.FORBIDDEN,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, status_code=403, details=details)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a unique request ID to each request."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def get_request_id(request: Request) -> str:
    """Get the request ID from the request state."""
    return getattr(request.state, "request_id", str(uuid4()))


def build_error_response(
    code: str,
    message: str,
    request_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a standardized error response."""
    error_data: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if details:
        error_data["details"] = details
    return {"error": error_data}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            code=exc.code,
            message=exc.message,
            request_id=get_request_id(request),
            details=exc.details,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException (e.g. unknown routes) with standardized format."""
    code_map = {
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        422: ErrorCode.VALIDATION_ERROR,
    }
    code = code_map.get(exc.status_code, ErrorCode.BAD_REQUEST)

    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            code=code,
            message=str(exc.detail),
            request_id=get_request_id(request),
        ),
    )


async def validation_exception_handler(
    request: Request, exc: ValidationError | RequestValidationError
) -> JSONResponse:
    """Handle request/pydantic validation errors with standardized format."""
    field_errors = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        field_errors.append(
            {
                "field": field_path,
                "message": error["msg"],
                "type": error["type"],
            }
        )

    return JSONResponse(
        status_code=422,
        content=build_error_response(
            code=ErrorCode.VALIDATION_ERROR,
            message="Request validation failed",
            request_id=get_request_id(request),
            details={"errors": field_errors},
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    return JSONResponse(
        status_code=500,
        content=build_error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
            request_id=get_request_id(request),
        ),
    )
