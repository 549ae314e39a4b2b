"""
Consistent error handling for the API.

Every error response has the same shape:

    {"error": {"code": "NOT_FOUND", "message": "User not found", "correlation_id": "..."}}

Codes are stable; messages are safe for clients. Internal details (stack
traces, SQL, upstream responses) are logged server-side with the correlation
id and never returned.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ome.auth.exceptions import (
    KeycloakError,
    KeycloakNotConfigured,
    MalformedToken,
    UpstreamUnavailable,
)
from ome.repositories.errors import (
    CrossTenantAccessDenied,
    DuplicateEntity,
    NotFound,
    RepositoryError,
    TenantNotResolved,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


_STATUS_CODES = {
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


class AppError(Exception):
    """Base application error with a stable code and a client-safe message."""

    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.code]

    def to_dict(self, correlation_id: Optional[str] = None) -> dict:
        body = {"code": self.code.value, "message": self.message}
        if self.details:
            body["details"] = self.details
        if correlation_id:
            body["correlation_id"] = correlation_id
        return {"error": body}


class AuthenticationError(AppError):
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDeniedError(AppError):
    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "You do not have permission to perform this action", details=None):
        super().__init__(message, details)


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND


class ConflictError(AppError):
    code = ErrorCode.CONFLICT


class ValidationError(AppError):
    code = ErrorCode.BAD_REQUEST


class ServiceUnavailableError(AppError):
    code = ErrorCode.SERVICE_UNAVAILABLE


def error_response(
    code: ErrorCode,
    message: str,
    correlation_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = {"code": code.value, "message": message}
    if details:
        body["details"] = details
    if correlation_id:
        body["correlation_id"] = correlation_id
    return JSONResponse(status_code=_STATUS_CODES[code], content={"error": body})


def _to_app_error(exc: Exception) -> AppError:
    """Translate domain exceptions into client-safe AppErrors."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, NotFound):
        return NotFoundError(exc.message)
    if isinstance(exc, DuplicateEntity):
        details = {"field": exc.field} if exc.field else None
        return ConflictError(exc.message, details)
    if isinstance(exc, CrossTenantAccessDenied):
        return PermissionDeniedError("Access denied")
    if isinstance(exc, TenantNotResolved):
        return ValidationError("No tenant selected")
    if isinstance(exc, KeycloakNotConfigured):
        return ServiceUnavailableError("Authentication service not configured")
    if isinstance(exc, UpstreamUnavailable):
        return ServiceUnavailableError("Identity provider unavailable")
    if isinstance(exc, MalformedToken):
        return AuthenticationError("Invalid token")
    if isinstance(exc, KeycloakError):
        return AuthenticationError("Authentication failed")
    return AppError("An unexpected error occurred")


def _tenant_for_log(request: Request) -> Optional[str]:
    context = getattr(request.state, "request_context", None)
    if context is None:
        return None
    tenant_id = context.tenant_id
    return str(tenant_id) if tenant_id else None


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle AppError, repository and identity provider errors."""
    error = _to_app_error(exc)
    correlation_id = generate_correlation_id()

    log = logger.warning if error.status_code < 500 else logger.error
    log(
        "Request failed",
        extra={
            "correlation_id": correlation_id,
            "error_code": error.code.value,
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "tenant_id": _tenant_for_log(request),
        },
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict(correlation_id))


_HTTP_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.BAD_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_409_CONFLICT: ErrorCode.CONFLICT,
    status.HTTP_503_SERVICE_UNAVAILABLE: ErrorCode.SERVICE_UNAVAILABLE,
}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.BAD_REQUEST)
    message = exc.detail if isinstance(exc.detail, str) else code.value.replace("_", " ").capitalize()
    response = JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": code.value, "message": message}},
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return error_response(ErrorCode.BAD_REQUEST, "Invalid request", details={"fields": fields})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with proper logging."""
    correlation_id = generate_correlation_id()
    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "tenant_id": _tenant_for_log(request),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return error_response(
        ErrorCode.INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        correlation_id=correlation_id,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, domain_exception_handler)
    app.add_exception_handler(RepositoryError, domain_exception_handler)
    app.add_exception_handler(KeycloakError, domain_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
